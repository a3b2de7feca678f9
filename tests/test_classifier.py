from importer.classifier import Marker, classify_cell, is_account_number, is_instrument


def test_account_number_heuristic():
    assert is_account_number("ACCT123456")
    assert is_account_number("APEX-123456-01")
    # too short, numeric only, or a header label
    assert not is_account_number("ESZ4")
    assert not is_account_number("1234567890")
    assert not is_account_number("Account")
    assert not is_account_number("Entry Order Number")


def test_instrument_pattern():
    assert is_instrument("ESZ4")
    assert is_instrument("MESZ4")
    assert is_instrument("ZNH24")
    assert not is_instrument("ES")
    assert not is_instrument("ESZ2024")
    assert not is_instrument("esz4")


def test_classify_cell():
    assert classify_cell("ACCT123456") == Marker.ACCOUNT_NUMBER
    assert classify_cell("MNQH5") == Marker.INSTRUMENT
    assert classify_cell("Entry Order Number") == Marker.SECTION_HEADER
    assert classify_cell("") == Marker.NONE
    assert classify_cell(None) == Marker.NONE
    assert classify_cell("1001") == Marker.NONE
