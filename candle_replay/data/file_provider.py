"""
DataFrame / 파일 기반 DataProvider 구현.

[ 역할 ]
    이미 내려받아 둔 봉 데이터를 읽어서 전략/백테스트에 제공.
    거래소 다운로드/페이지네이션은 이 패키지 밖의 책임.

[ 포함 클래스 ]
    DataFrameProvider - core/data_provider.py::DataProvider 구현체
                        미리 로드된 DataFrame에서 OHLCV 데이터 제공 (테스트/노트북용)
    CsvDataProvider   - PathsConfig.data_dir 아래 "{symbol}_{interval}.csv|json" 파일 로드

[ 호출하는 곳 ]
    - load_series()로 무결성 검사 후 QuoteSeries 생성
    - backtest/engine.py 사용 전 단계
"""

import logging
from pathlib import Path

import pandas as pd

from candle_replay.core.data_provider import OHLCV_COLUMNS, DataProvider
from candle_replay.core.errors import DataIntegrityError
from candle_replay.data.integrity import check_data_integrity
from candle_replay.data.quote_series import QuoteSeries
from candle_replay.utils.config import PathsConfig

logger = logging.getLogger("candle_replay.data")


def _normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """컬럼명 소문자화 + 거래소 표기(dateUnix, date) 정리."""
    df = df.rename(columns=str.lower)
    if "timestamp" not in df.columns:
        for alias in ("dateunix", "date", "datetime", "time"):
            if alias in df.columns:
                df = df.rename(columns={alias: "timestamp"})
                break
    return df


# ─── DataFrame 제공자 ───────────────────────────────────────────────────────

class DataFrameProvider(DataProvider):
    """DataFrame 기반 데이터 제공자.

    사용법:
        provider = DataFrameProvider()
        provider.load_data("BTCUSDT", "60", df)
        candles = provider.get_candles("BTCUSDT", "60")
    """

    def __init__(self):
        self._data: dict[tuple[str, str], pd.DataFrame] = {}  # (symbol, interval) → OHLCV

    def load_data(self, symbol: str, interval: str, df: pd.DataFrame) -> None:
        df = _normalize_columns(df.copy())
        self._data[(symbol, str(interval))] = df.reset_index(drop=True)

    def get_ohlcv(self, symbol: str, interval: str) -> pd.DataFrame:
        key = (symbol, str(interval))
        if key not in self._data:
            return pd.DataFrame(columns=OHLCV_COLUMNS)
        return self._data[key].copy()

    def get_symbols(self) -> list[str]:
        return sorted({symbol for symbol, _ in self._data})


# ─── 파일 제공자 ────────────────────────────────────────────────────────────

class CsvDataProvider(DataProvider):
    """data_dir 아래 CSV/JSON 파일을 읽는 제공자.

    파일명 규칙: {symbol}_{interval}.csv 또는 {symbol}_{interval}.json
    """

    def __init__(self, paths: PathsConfig):
        self.paths = paths

    @property
    def data_dir(self) -> Path:
        return Path(self.paths.data_dir)

    def _path_for(self, symbol: str, interval: str) -> Path:
        for suffix in (".csv", ".json"):
            path = self.data_dir / f"{symbol}_{interval}{suffix}"
            if path.exists():
                return path
        raise DataIntegrityError(f"데이터 파일 없음: {self.data_dir / f'{symbol}_{interval}'}.csv|json")

    def get_ohlcv(self, symbol: str, interval: str) -> pd.DataFrame:
        path = self._path_for(symbol, interval)
        if path.suffix == ".json":
            df = pd.read_json(path)
        else:
            df = pd.read_csv(path)
        df = _normalize_columns(df)
        logger.info(f"{path.name}: {len(df)}개 봉 로드")
        return df

    def get_symbols(self) -> list[str]:
        if not self.data_dir.exists():
            return []
        names = {p.stem.rsplit("_", 1)[0] for p in self.data_dir.glob("*_*.csv")}
        names |= {p.stem.rsplit("_", 1)[0] for p in self.data_dir.glob("*_*.json")}
        return sorted(names)


def load_series(
    provider: DataProvider,
    symbol: str,
    interval: str,
    warmup: int = 0,
    allow_gaps: bool = False,
) -> QuoteSeries:
    """provider에서 봉을 읽어 무결성 검사 후 QuoteSeries로 반환.

    Raises:
        DataIntegrityError: 데이터 없음, 비정상 OHLCV, 순서/간격 오류
    """
    candles = provider.get_candles(symbol, interval)
    if not candles:
        raise DataIntegrityError(f"{symbol} ({interval}): 데이터 없음")
    check_data_integrity(candles, interval, allow_gaps=allow_gaps)
    return QuoteSeries(candles, warmup=warmup, symbol=symbol, interval=str(interval))
