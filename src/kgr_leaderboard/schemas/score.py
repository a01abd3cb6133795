"""Leaderboard-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from kgr_leaderboard.db.time import to_iso_z


class LeaderboardEntry(BaseModel):
    """Public view of a stored score, in the field names clients already consume."""

    address: str
    score: int
    tx_hash: str = Field(..., alias="txHash")
    paid_at_iso: str = Field(..., alias="paidAtISO")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _from_row(cls, data: object) -> object:
        if isinstance(data, dict):
            return data

        paid_at = getattr(data, "paid_at", None)
        return {
            "address": getattr(data, "address", None),
            "score": getattr(data, "score", None),
            "txHash": getattr(data, "tx_hash", None),
            "paidAtISO": to_iso_z(paid_at) if isinstance(paid_at, datetime) else paid_at,
        }


class SubmitScoreResponse(BaseModel):
    """Body returned after a submission is accepted."""

    ok: bool = True
    top10: list[LeaderboardEntry]


class LeaderboardResponse(BaseModel):
    """Body returned by the leaderboard query."""

    top: list[LeaderboardEntry]


class RateLimitedResponse(BaseModel):
    """Body returned when the submission rate limit is exceeded."""

    ok: bool = False
    error: str = "rate_limited"
    message: str
