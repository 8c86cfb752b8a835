"""
Tabular feed reader. Parses CSV and Excel uploads into rows of named cells.
"""

import io
import logging
import zipfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Union

import pandas as pd

from ..exceptions import UnreadableFile, UnsupportedFormat


FeedSource = Union[str, Path, bytes, BinaryIO]

CSV_FORMATS = {'csv', 'txt'}
EXCEL_FORMATS = {'xlsx', 'xlsm'}


class TabularFileReader(ABC):
    """Reads a feed file into a list of row mappings."""

    @abstractmethod
    def read(
        self,
        source: FeedSource,
        skip_rows: int = 0,
        file_format: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Parse a feed.

        Raises:
            UnreadableFile: If the content cannot be read
            UnsupportedFormat: If the format is not supported
        """
        pass


class PandasFileReader(TabularFileReader):
    """
    Reads CSV and Excel feeds with pandas.

    Every cell is read as text; empty cells become None.
    """

    def __init__(self, encoding: str = 'utf-8'):
        self.encoding = encoding
        self.logger = logging.getLogger(self.__class__.__name__)

    def read(
        self,
        source: FeedSource,
        skip_rows: int = 0,
        file_format: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        name = self._source_name(source)
        fmt = (file_format or Path(name).suffix).lower().lstrip('.')

        if fmt not in CSV_FORMATS and fmt not in EXCEL_FORMATS:
            raise UnsupportedFormat(f"Unsupported feed format '{fmt or 'unknown'}'", source=name)

        if isinstance(source, bytes):
            source = io.BytesIO(source)

        try:
            if fmt in CSV_FORMATS:
                df = pd.read_csv(
                    source,
                    dtype=str,
                    skiprows=skip_rows,
                    encoding=self.encoding,
                    keep_default_na=False
                )
            else:
                df = pd.read_excel(source, dtype=str, skiprows=skip_rows)
        except (OSError, ValueError, zipfile.BadZipFile) as e:
            raise UnreadableFile(f"Could not read feed {name}: {e}", source=name) from e
        except ImportError as e:
            raise UnsupportedFormat(f"No Excel engine for feed {name}: {e}", source=name) from e

        df.columns = [str(c).strip() for c in df.columns]
        df = df.astype(object)
        df = df.where(pd.notna(df) & (df != ''), None)

        rows = df.to_dict(orient='records')
        self.logger.info(f"Read {len(rows)} row(s) from {name}")
        return rows

    @staticmethod
    def _source_name(source: FeedSource) -> str:
        if isinstance(source, (str, Path)):
            return str(source)
        return getattr(source, 'name', '<upload>')
