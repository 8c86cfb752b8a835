"""
Feed normalization: turns raw tabular rows into vehicle fragments keyed by plate.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..models import (
    CheckStatus,
    FeedWarning,
    GroundedStatus,
    SourceKind,
    VehicleFragment,
    WarningCategory
)


PLATE = 'plate'
STATUS = 'status'
GROUNDED = 'grounded'
DISPLAY_NAME = 'display_name'
EXTRA_INFO = 'extra_info'

_PLATE_ALIASES = ['License Plate', 'Plate', 'Plate Number', 'Registration']
_NAME_ALIASES = ['Vehicle Name', 'Vehicle', 'Name', 'Unit']

DEFAULT_COLUMN_ALIASES: Dict[SourceKind, Dict[str, List[str]]] = {
    SourceKind.DIVE_DEEP: {
        PLATE: _PLATE_ALIASES,
        STATUS: ['DiveDeep Status', 'Status', 'Result'],
        DISPLAY_NAME: _NAME_ALIASES
    },
    SourceKind.VIN_AUDIT: {
        PLATE: _PLATE_ALIASES,
        STATUS: ['VinAudit Status', 'Status', 'Result'],
        DISPLAY_NAME: _NAME_ALIASES
    },
    SourceKind.GROUNDED: {
        PLATE: _PLATE_ALIASES,
        GROUNDED: ['Grounded', 'Grounded Status', 'Is Grounded', 'Status'],
        DISPLAY_NAME: _NAME_ALIASES
    }
}

REQUIRED_FIELDS: Dict[SourceKind, Tuple[str, ...]] = {
    SourceKind.DIVE_DEEP: (PLATE, STATUS),
    SourceKind.VIN_AUDIT: (PLATE, STATUS),
    SourceKind.GROUNDED: (PLATE, GROUNDED)
}

_PASS_VALUES = {'pass', 'passed', 'ok', 'p', 'yes', 'y', 'true', '1'}
_FAIL_VALUES = {'fail', 'failed', 'f', 'no', 'n', 'false', '0'}
_GROUNDED_YES = {'yes', 'y', 'true', '1', 'grounded'}
_GROUNDED_NO = {'no', 'n', 'false', '0', 'not grounded', 'ungrounded'}


def normalize_plate(plate: Optional[Any]) -> str:
    """
    Normalize a license plate for joining across feeds.

    Surrounding and internal whitespace is removed and letters are
    uppercased, so ``" abc 123 "`` and ``"ABC123"`` are the same key.
    """
    if plate is None:
        return ''

    return re.sub(r'\s+', '', str(plate)).upper()


def clean_string(value: Any) -> str:
    """Clean and convert a cell value to string."""
    if value is None:
        return ''
    if isinstance(value, float) and value != value:
        return ''
    if isinstance(value, bool):
        return 'Yes' if value else 'No'
    return str(value).strip()


def normalize_header(header: Any) -> str:
    """Case- and whitespace-insensitive form of a column header."""
    return re.sub(r'\s+', ' ', clean_string(header)).lower()


def _normalize_token(value: Any) -> str:
    return re.sub(r'\s+', ' ', clean_string(value)).lower()


def parse_check_status(value: Any) -> CheckStatus:
    """Map a DiveDeep/VinAudit status cell to a CheckStatus."""
    token = _normalize_token(value)
    if token in _PASS_VALUES:
        return CheckStatus.PASS
    if token in _FAIL_VALUES:
        return CheckStatus.FAIL
    return CheckStatus.UNKNOWN


def parse_grounded_status(value: Any) -> GroundedStatus:
    """Map a Grounded cell to a GroundedStatus."""
    token = _normalize_token(value)
    if token in _GROUNDED_YES:
        return GroundedStatus.YES
    if token in _GROUNDED_NO:
        return GroundedStatus.NO
    return GroundedStatus.UNKNOWN


class FeedNormalizer:
    """
    Converts rows of one feed into VehicleFragments.

    Column names are matched against a fixed alias table per source kind.
    Bad rows are dropped and reported as warnings; nothing here raises for
    malformed data.
    """

    def __init__(
        self,
        column_aliases: Optional[Dict[SourceKind, Dict[str, List[str]]]] = None
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.column_aliases = {
            kind: {name: list(aliases) for name, aliases in fields.items()}
            for kind, fields in DEFAULT_COLUMN_ALIASES.items()
        }
        for kind, fields in (column_aliases or {}).items():
            self.column_aliases[kind].update(
                {name: list(aliases) for name, aliases in fields.items()}
            )

    def resolve_columns(
        self,
        headers: Iterable[Any],
        source_kind: SourceKind
    ) -> Dict[str, str]:
        """
        Match row headers to canonical fields.

        Returns:
            Mapping of canonical field name to the row's actual header
        """
        by_normalized = {}
        for header in headers:
            by_normalized.setdefault(normalize_header(header), header)

        resolved = {}
        claimed = set()
        for name, aliases in self.column_aliases[source_kind].items():
            for alias in aliases:
                header = by_normalized.get(normalize_header(alias))
                if header is not None and header not in claimed:
                    resolved[name] = header
                    claimed.add(header)
                    break

        return resolved

    def normalize(
        self,
        rows: Iterable[Mapping[str, Any]],
        source_kind: SourceKind
    ) -> Tuple[List[VehicleFragment], List[FeedWarning]]:
        """
        Normalize all rows of a feed.

        Args:
            rows: Parsed rows, each a mapping of column name to cell value
            source_kind: Which feed the rows came from

        Returns:
            Tuple of (fragments in row order, warnings for dropped rows)
        """
        fragments = []
        warnings = []
        required = REQUIRED_FIELDS[source_kind]
        resolved_cache: Dict[Tuple[Any, ...], Dict[str, str]] = {}

        for ordinal, row in enumerate(rows, start=1):
            headers = tuple(row.keys())
            if headers not in resolved_cache:
                resolved_cache[headers] = self.resolve_columns(headers, source_kind)
            columns = resolved_cache[headers]

            missing = [name for name in required if name not in columns]
            if missing:
                warning = FeedWarning(
                    source_kind=source_kind,
                    category=WarningCategory.MISSING_COLUMN,
                    reason=f"Missing required column(s): {', '.join(missing)}",
                    row_ordinal=ordinal
                )
                self.logger.warning(str(warning))
                warnings.append(warning)
                continue

            plate = normalize_plate(row.get(columns[PLATE]))
            if not plate:
                warning = FeedWarning(
                    source_kind=source_kind,
                    category=WarningCategory.SKIPPED_ROW,
                    reason="Empty license plate",
                    row_ordinal=ordinal
                )
                self.logger.warning(str(warning))
                warnings.append(warning)
                continue

            fields = self._build_fields(row, columns, source_kind)
            fragments.append(VehicleFragment(
                plate=plate,
                source_kind=source_kind,
                fields=fields,
                row_ordinal=ordinal
            ))

        self.logger.info(
            f"Normalized {len(fragments)} {source_kind.value} fragment(s), "
            f"{len(warnings)} row(s) skipped"
        )
        return fragments, warnings

    def _build_fields(
        self,
        row: Mapping[str, Any],
        columns: Dict[str, str],
        source_kind: SourceKind
    ) -> Dict[str, Any]:
        """Extract canonical (and for Grounded, auxiliary) fields of a row."""
        fields: Dict[str, Any] = {}

        if DISPLAY_NAME in columns:
            fields[DISPLAY_NAME] = clean_string(row.get(columns[DISPLAY_NAME]))
        else:
            fields[DISPLAY_NAME] = ''

        if source_kind is SourceKind.GROUNDED:
            fields[GROUNDED] = parse_grounded_status(row.get(columns[GROUNDED]))

            extras = {}
            mapped_headers = set(columns.values())
            for header, value in row.items():
                if header in mapped_headers:
                    continue
                cleaned = clean_string(value)
                if cleaned:
                    extras[clean_string(header)] = cleaned
            fields[EXTRA_INFO] = extras
        else:
            fields[STATUS] = parse_check_status(row.get(columns[STATUS]))

        return fields
