from api.schemas.backtest import BacktestRequest, BacktestResponse, CandleIn
from api.schemas.common import ErrorResponse

__all__ = [
    "BacktestRequest",
    "BacktestResponse",
    "CandleIn",
    "ErrorResponse",
]
