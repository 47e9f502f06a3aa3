"""
Driving Risk Prediction Module

- RiskEngine: scores a PredictionContext into RiskScores + RiskFactors
- PredictionScheduler: periodic tick plus on-change recompute
"""

from drivesafe.prediction.risk_engine import (
    RiskEngine,
    UpcomingCurve,
    NearbyObstacle,
    round_half_up,
    clamp_score,
    get_risk_engine,
    init_risk_engine,
)

from drivesafe.prediction.prediction_scheduler import (
    PredictionScheduler,
    get_prediction_scheduler,
    init_prediction_scheduler,
)


__all__ = [
    'RiskEngine',
    'UpcomingCurve',
    'NearbyObstacle',
    'round_half_up',
    'clamp_score',
    'get_risk_engine',
    'init_risk_engine',
    'PredictionScheduler',
    'get_prediction_scheduler',
    'init_prediction_scheduler',
]
