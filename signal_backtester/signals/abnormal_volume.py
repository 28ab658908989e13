"""
비정상 거래량 (Abnormal Volume) 시그널.

[ 계산 ]
    최근 30거래일(당일 포함) 거래량의 평균/표준편차(모표준편차)로 당일 z-score.
    표준편차가 0이면 0. |z| >= 2 이면 Abnormal, >= 1 이면 Moderate.

[ 발동 ]
    SignalSpec: ABSOLUTE / TICKER (급감도 이상 거래로 본다)
"""

import numpy as np
import pandas as pd

from signal_backtester.data.reference import ReferenceData
from signal_backtester.signals import register_computation
from signal_backtester.signals._frames import to_long, to_wide

WINDOW = 30


def classify_status(z_score: float) -> str:
    abs_z = abs(z_score)
    if abs_z >= 2:
        return "Abnormal"
    if abs_z >= 1:
        return "Moderate"
    return "Normal"


@register_computation("abnormal_volume")
def abnormal_volume(history: dict[str, pd.DataFrame], reference: ReferenceData) -> pd.DataFrame:
    volume = to_wide(history, "volume")
    if volume.empty:
        return to_long(volume)

    rolling = volume.rolling(WINDOW, min_periods=1)
    mean = rolling.mean()
    std = rolling.std(ddof=0)
    z_score = (volume - mean) / std.replace(0.0, np.nan)
    # 거래량이 있는 날은 std가 0이어도 값 0으로 남긴다
    z_score = z_score.where(std != 0, 0.0).where(volume.notna())
    return to_long(z_score)
