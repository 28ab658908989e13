"""
기준 데이터(Reference Data) 모듈.

[ 역할 ]
    종목 유니버스, 발행주식수, 시가총액 규모 구분 기준을 한 곳에서 제공.
    시뮬레이터와 시그널 계산이 같은 유니버스를 공유하도록 주입용 객체로 둔다.

[ 기본 유니버스 ]
    노르웨이 저축은행(Sparebank) 22개 종목. config.yaml의 universe 섹션으로 교체 가능.

[ 호출하는 곳 ]
    - utils/config.py::Config._from_dict()에서 universe 섹션 파싱
    - data/market_data.py::MarketDataLoader (유니버스 티커 목록)
    - signals/lars.py (발행주식수로 회전율 계산)
"""

from dataclasses import dataclass, field
from typing import Any

PORTFOLIO_TICKER = "PORTFOLIO"  # 섹터 전체 시그널이 저장되는 가상 티커

DEFAULT_SHARES_OUTSTANDING = 50_000_000


@dataclass(frozen=True)
class Instrument:
    """유니버스의 개별 종목."""
    name: str
    ticker: str
    shares_outstanding: int = DEFAULT_SHARES_OUTSTANDING


DEFAULT_UNIVERSE: tuple[Instrument, ...] = (
    Instrument("DNB", "DNB.OL", 1_500_000_000),
    Instrument("SB1 Sør-Norge", "SB1NO.OL", 75_000_000),
    Instrument("Sparebanken Norge", "SBNOR.OL", 140_000_000),
    Instrument("SB1 SMN", "MING.OL", 390_000_000),
    Instrument("SB1 Østlandet", "SPOL.OL", 110_000_000),
    Instrument("SB1 Nord-Norge", "NONG.OL", 86_000_000),
    Instrument("Sparebanken Møre", "MORG.OL", 35_000_000),
    Instrument("Sparebanken Øst", "SPOG.OL", 50_000_000),
    Instrument("SB1 Helgeland", "HELG.OL", 40_000_000),
    Instrument("Rogaland Sparebank", "ROGS.OL", 45_000_000),
    Instrument("SB1 Ringerike Hadeland", "RING.OL", 33_000_000),
    Instrument("SB1 Østfold Akershus", "SOAG.OL", 82_000_000),
    Instrument("SB1 Nordmøre", "SNOR.OL", 28_000_000),
    Instrument("Haugesund Sparebank", "HGSB.OL", 25_000_000),
    Instrument("Jæren Sparebank", "JAREN.OL", 18_000_000),
    Instrument("Aurskog Sparebank", "AURG.OL", 12_000_000),
    Instrument("Skue Sparebank", "SKUE.OL", 8_000_000),
    Instrument("Melhus Sparebank", "MELG.OL", 15_000_000),
    Instrument("Sogn Sparebank", "SOGN.OL", 20_000_000),
    Instrument("Høland og Setskog Sparebank", "HSPG.OL", 10_000_000),
    Instrument("Voss Veksel- og Landmandsbank", "VVL.OL", 22_000_000),
    Instrument("Bien Sparebank", "BIEN.OL", 16_000_000),
)


@dataclass
class ReferenceData:
    """유니버스 + 규모 구분 기준. config.yaml의 universe 섹션에 대응.

    small_max / mid_max는 시가총액(10억 단위) 경계값.
    시가총액 < small_max → Small, < mid_max → Mid, 그 외 Large.
    """
    instruments: list[Instrument] = field(default_factory=lambda: list(DEFAULT_UNIVERSE))
    small_max: float = 10.0
    mid_max: float = 50.0

    @property
    def tickers(self) -> list[str]:
        return [i.ticker for i in self.instruments]

    def get(self, ticker: str) -> Instrument | None:
        for instrument in self.instruments:
            if instrument.ticker == ticker:
                return instrument
        return None

    def shares_outstanding(self, ticker: str) -> int:
        """발행주식수. 유니버스에 없으면 기본값."""
        instrument = self.get(ticker)
        return instrument.shares_outstanding if instrument else DEFAULT_SHARES_OUTSTANDING

    def size_category(self, ticker: str, close: float) -> str:
        """종가 기준 시가총액 규모 구분 (Small / Mid / Large)."""
        market_cap = close * self.shares_outstanding(ticker) / 1e9
        if market_cap < self.small_max:
            return "Small"
        if market_cap < self.mid_max:
            return "Mid"
        return "Large"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ReferenceData":
        """universe 섹션 파싱. instruments가 없으면 기본 유니버스 사용."""
        if not data:
            return cls()
        raw = data.get("instruments")
        instruments = (
            [
                Instrument(
                    name=item.get("name", item["ticker"]),
                    ticker=item["ticker"],
                    shares_outstanding=int(item.get("shares_outstanding", DEFAULT_SHARES_OUTSTANDING)),
                )
                for item in raw
            ]
            if raw
            else list(DEFAULT_UNIVERSE)
        )
        return cls(
            instruments=instruments,
            small_max=float(data.get("small_max", 10.0)),
            mid_max=float(data.get("mid_max", 50.0)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "instruments": [
                {"name": i.name, "ticker": i.ticker, "shares_outstanding": i.shares_outstanding}
                for i in self.instruments
            ],
            "small_max": self.small_max,
            "mid_max": self.mid_max,
        }
