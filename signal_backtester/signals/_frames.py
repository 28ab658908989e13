"""시그널 계산용 DataFrame 변환 헬퍼 (long ↔ wide)."""

import pandas as pd


def to_wide(history: dict[str, pd.DataFrame], column: str) -> pd.DataFrame:
    """{ticker: DataFrame[date, ...]} → index=date, columns=ticker 인 wide 프레임."""
    frames = []
    for ticker, df in history.items():
        if df is None or df.empty or column not in df.columns:
            continue
        part = df[["date", column]].copy()
        part["date"] = pd.to_datetime(part["date"]).dt.date
        part["ticker"] = ticker
        frames.append(part)
    if not frames:
        return pd.DataFrame()
    long = pd.concat(frames, ignore_index=True).drop_duplicates(["date", "ticker"], keep="last")
    return long.pivot(index="date", columns="ticker", values=column).sort_index().astype(float)


def to_long(wide: pd.DataFrame) -> pd.DataFrame:
    """wide 프레임 → DataFrame[date, ticker, value]. NaN은 제거."""
    if wide.empty:
        return pd.DataFrame(columns=["date", "ticker", "value"])
    wide = wide.copy()
    wide.index.name = "date"
    wide.columns.name = None
    long = wide.reset_index().melt(id_vars="date", var_name="ticker", value_name="value")
    return long.dropna(subset=["value"]).reset_index(drop=True)
