"""
거래량 급증 (Volume Anomaly) 시그널.

[ 계산 ]
    직전 20거래일(당일 제외) 평균 대비 당일 거래량 증가율(%).
    평균이 0이면 0. 직전 데이터가 없는 첫날은 값 없음.
"""

import pandas as pd

from signal_backtester.data.reference import ReferenceData
from signal_backtester.signals import register_computation
from signal_backtester.signals._frames import to_long, to_wide

WINDOW = 20


@register_computation("volume_anomaly")
def volume_anomaly(history: dict[str, pd.DataFrame], reference: ReferenceData) -> pd.DataFrame:
    volume = to_wide(history, "volume")
    if volume.empty:
        return to_long(volume)

    trailing = volume.rolling(WINDOW, min_periods=1).mean().shift(1)
    spike = (volume - trailing) / trailing * 100
    spike = spike.where(trailing != 0, 0.0).where(trailing.notna() & volume.notna())
    return to_long(spike)
