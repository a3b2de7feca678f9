"""
Import pipeline
---------------
``run_import`` drives one file through extraction, mapping and assembly.

 - extraction runs once per file, in row order (the Rithmic walker is stateful)
 - data rows are then mapped and assembled batch by batch; ``should_continue``
   is consulted at every batch boundary and a cancelled import keeps the trades
   accepted so far
 - order exports (one row per fill) are first folded into trades; the trades
   they form are then assembled batch by batch
 - structural problems never raise out of here: they come back on
   ``ImportReport.error`` so callers tell file-level failures from row drops by type
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, TypeVar, Union

from core.models import Trade
from importer.assembler import AssemblyContext, DroppedRow, assemble
from importer.coercion import build_coercers
from importer.errors import MissingHeaderError, StructuralError, UnsupportedPlatformError
from importer.extractors import Extraction, RawRow
from importer.fields import CanonicalField, ColumnMapping, coerce_mapping, suggest_mapping
from importer.mapper import MappedRow, apply_layout, map_rows, resolve_layout_mapping
from importer.orders import OrderField, OrderLayout, contract_specs, orders_to_trades, resolve_order_columns
from importer.platforms import PlatformDescriptor, get_platform
from utils.config import check_timezone, get_import_cfg
from utils.logger import log_extra, setup_logger
from utils.settings import get_settings

logger = setup_logger(__name__)

T = TypeVar("T")


@dataclass
class ImportReport:
    platform: str
    trades: List[Trade] = field(default_factory=list)
    dropped: List[DroppedRow] = field(default_factory=list)
    error: Optional[StructuralError] = None
    rows_seen: int = 0
    cancelled: bool = False
    mapping: ColumnMapping = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    def drop_counts(self) -> Dict[str, int]:
        return dict(Counter(d.reason.value for d in self.dropped))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "platform": self.platform,
            "trades": [t.to_dict() for t in self.trades],
            "dropped": [d.to_dict() for d in self.dropped],
            "error": self.error.to_dict() if self.error is not None else None,
            "rows_seen": self.rows_seen,
            "cancelled": self.cancelled,
            "mapping": {h: f.value for h, f in self.mapping.items()},
        }


def iter_batches(rows: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    if size <= 0:
        raise ValueError("batch size must be positive")
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


def _resolve_mapping(
    platform: PlatformDescriptor,
    headers: Sequence[str],
    mapping: Optional[Mapping[str, Union[CanonicalField, str, None]]],
) -> ColumnMapping:
    if platform.layout is not None:
        return resolve_layout_mapping(headers, platform.layout)
    if mapping:
        return coerce_mapping(mapping)
    return suggest_mapping(headers)


def _order_rows(
    platform_key: str,
    layout: OrderLayout,
    extraction: Extraction,
    columns: Dict[OrderField, int],
    cfg: Dict[str, Any],
    tz: str,
) -> Tuple[List[MappedRow], List[DroppedRow]]:
    trades, rejected = orders_to_trades(
        extraction.data_rows,
        extraction.row_indexes(),
        columns,
        layout,
        specs=contract_specs(cfg.get("contract_specs")),
        date_formats=tuple(cfg.get("date_formats") or ()),
        tz=tz,
    )
    rows = [MappedRow(index=t.index, values=t.values()) for t in trades]
    dropped = [DroppedRow(r.index, r.reason, r.detail) for r in rejected]
    for d in dropped:
        logger.info(
            "order dropped",
            extra=log_extra(platform=platform_key, row_index=d.index, reason=d.reason.value, detail=d.detail),
        )
    return rows, dropped


def run_import(
    platform_key: str,
    rows: Sequence[RawRow],
    *,
    user_id: str,
    account_number: Optional[str] = None,
    mapping: Optional[Mapping[str, Union[CanonicalField, str, None]]] = None,
    cfg: Optional[Dict[str, Any]] = None,
    batch_size: Optional[int] = None,
    should_continue: Optional[Callable[[], bool]] = None,
) -> ImportReport:
    settings = get_settings()
    cfg = cfg if cfg is not None else get_import_cfg(settings.IMPORT_CONFIG_PATH)
    report = ImportReport(platform=platform_key)
    order_columns: Dict[OrderField, int] = {}

    try:
        platform = get_platform(platform_key)
        if platform.extract is None:
            raise UnsupportedPlatformError(
                f"'{platform_key}' is a direct sync platform and cannot import files", platform=platform_key
            )
        extraction = platform.extract(rows, platform_key)
        if platform.orders is not None:
            order_columns = resolve_order_columns(
                extraction.headers, platform.orders, extraction.columns(), platform_key
            )
        else:
            report.mapping = _resolve_mapping(platform, extraction.headers, mapping)
            if not report.mapping:
                raise MissingHeaderError(
                    "no column of the header row could be mapped to a trade field",
                    platform=platform_key,
                    row_index=max(extraction.data_offset - 1, 0),
                )
    except StructuralError as e:
        logger.warning(
            "import rejected",
            extra=log_extra(platform=platform_key, error=type(e).__name__, row_index=e.row_index, detail=str(e)),
        )
        report.error = e
        return report

    layout = platform.layout
    tz = cfg.get("timezone") or settings.DEFAULT_TIMEZONE
    check_timezone(tz, "import config")
    coercers = build_coercers(
        date_formats=tuple(layout.date_formats if layout and layout.date_formats else cfg.get("date_formats") or ()),
        tz=tz,
        locale_currency=bool(layout and layout.locale_currency),
    )
    fatal = frozenset() if layout and layout.locale_currency else frozenset({CanonicalField.PNL})
    ctx = AssemblyContext(
        user_id=user_id,
        account_number=account_number,
        default_account=cfg.get("default_account_number") or settings.DEFAULT_ACCOUNT_NUMBER,
        # fixed layouts and order exports report their own commissions
        commission_defaults=(
            (cfg.get("commission_defaults") or {}) if layout is None and platform.orders is None else {}
        ),
        platform=platform_key,
    )
    size = batch_size or int(cfg.get("batch_size") or settings.IMPORT_BATCH_SIZE)

    if platform.orders is not None:
        # fills are replayed in one ordered pass; batching applies to the trades they form
        work, dropped = _order_rows(platform_key, platform.orders, extraction, order_columns, cfg, tz)
        report.dropped.extend(dropped)
        report.rows_seen = len(extraction.data_rows)
        for batch in iter_batches(work, size):
            if should_continue is not None and not should_continue():
                report.cancelled = True
                logger.info("import cancelled", extra=log_extra(platform=platform_key, rows_seen=report.rows_seen))
                break
            part = assemble(batch, ctx)
            report.trades.extend(part.trades)
            report.dropped.extend(part.dropped)
    else:
        indexes = extraction.row_indexes()
        start = 0
        for batch in iter_batches(extraction.data_rows, size):
            if should_continue is not None and not should_continue():
                report.cancelled = True
                logger.info("import cancelled", extra=log_extra(platform=platform_key, rows_seen=report.rows_seen))
                break
            mapped = map_rows(
                extraction.headers,
                batch,
                report.mapping,
                coercers,
                columns=extraction.columns(),
                row_indexes=indexes[start:start + len(batch)],
                fatal_fields=fatal,
                min_cells=layout.min_cells if layout else 0,
                platform=platform_key,
            )
            if layout is not None:
                mapped = [apply_layout(r, layout) for r in mapped]
            part = assemble(mapped, ctx)
            report.trades.extend(part.trades)
            report.dropped.extend(part.dropped)
            report.rows_seen += len(batch)
            start += len(batch)

    report.dropped.sort(key=lambda d: d.index)
    logger.info(
        "import finished",
        extra=log_extra(
            platform=platform_key,
            rows_seen=report.rows_seen,
            accepted=len(report.trades),
            dropped=report.drop_counts(),
            cancelled=report.cancelled,
        ),
    )
    return report
