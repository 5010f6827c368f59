"""Request and response models exchanged with collaborators"""
import math
from datetime import date
from typing import Dict, Optional, Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from sleeper_rewards.errors import ValidationError


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class SessionReport(BaseModel):
    """
    Session-end telemetry as extracted by the transport layer.

    Accepts both snake_case and camelCase keys so mobile clients of
    different versions can be fed through unchanged.

    Attributes:
        wallet_address: Wallet the session is credited to
        auth_token: Token from the wallet challenge flow
        minutes_active: Minutes the client claims it was active
        storage_amount: Allocated storage in MB
        points_per_second: Client-side rate, only ever lowers the credit
        session_started_at / session_ended_at: Window bounds in epoch ms
    """
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    wallet_address: str = Field(validation_alias=_alias('wallet_address', 'walletAddress', 'wallet'))
    auth_token: Optional[str] = Field(None, validation_alias=_alias('auth_token', 'authToken'))
    username: Optional[str] = Field(None, validation_alias=_alias('username', 'skr', 'skrUsername'))
    minutes_active: int = Field(0, validation_alias=_alias('minutes_active', 'uptime_minutes', 'uptimeMinutes'))
    storage_amount: int = Field(0, validation_alias=_alias('storage_amount', 'storage_mb', 'storageMb'))
    stake_amount: float = Field(0.0, validation_alias=_alias('stake_amount', 'staked_skr_human', 'stakedSkrHuman'))
    human_checks_passed: int = Field(0, validation_alias=_alias('human_checks_passed', 'humanChecksPassed'))
    human_checks_failed: int = Field(0, validation_alias=_alias('human_checks_failed', 'humanChecksFailed'))
    daily_social_bonus_percent: float = Field(
        0.0, validation_alias=_alias('daily_social_bonus_percent', 'dailySocialBonusPercent')
    )
    active_boost_id: Optional[str] = Field(
        None, validation_alias=_alias('active_boost_id', 'active_skr_boost_id', 'activeSkrBoostId')
    )
    has_permanent_bonus: bool = Field(
        False, validation_alias=_alias('has_permanent_bonus', 'has_genesis_nft', 'hasGenesisNft')
    )
    points_per_second: float = Field(0.0, validation_alias=_alias('points_per_second', 'pointsPerSecond'))
    session_started_at: int = Field(validation_alias=_alias('session_started_at', 'sessionStartedAt'))
    session_ended_at: int = Field(validation_alias=_alias('session_ended_at', 'sessionEndedAt'))
    device_fingerprint: Optional[str] = Field(
        None, validation_alias=_alias('device_fingerprint', 'deviceFingerprint')
    )

    @field_validator(
        'minutes_active', 'storage_amount', 'human_checks_passed', 'human_checks_failed',
        'session_started_at', 'session_ended_at',
        mode='before'
    )
    @classmethod
    def _floor_numbers(cls, value: Any) -> Any:
        if isinstance(value, float):
            if not math.isfinite(value):
                raise ValueError("must be a finite number")
            return math.floor(value)
        return value

    @field_validator('stake_amount', 'daily_social_bonus_percent', 'points_per_second')
    @classmethod
    def _finite(cls, value: float) -> float:
        # NaN and infinities collapse to zero, the clamps downstream handle the rest
        return value if math.isfinite(value) else 0.0

    @field_validator('wallet_address', 'auth_token', 'username', 'active_boost_id', 'device_fingerprint')
    @classmethod
    def _strip(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> 'SessionReport':
        """Build a report from a decoded request body, raising the engine's ValidationError"""
        try:
            return cls.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid session report: {e.error_count()} field error(s)") from e

    @property
    def duration_seconds(self) -> int:
        return max(0, (self.session_ended_at - self.session_started_at) // 1000)


class SessionResult(BaseModel):
    """
    Outcome of a session-end report.

    Attributes:
        balance: Point balance after this call
        points_earned: Points credited by this call, 0 for a duplicate
        points_per_second: Effective rate, min(client, server)
        points_per_second_server: Rate recomputed from raw telemetry
        multipliers: Every multiplier applied, keyed by source
        cap_triggered: Whether the composed boost hit the cap
        duplicate: True when the window had already been recorded
    """
    session_id: Optional[int] = None
    wallet_address: str
    night_date: Optional[date] = None
    balance: int
    points_earned: int = 0
    points_per_second: float = 0.0
    points_per_second_server: float = 0.0
    points_per_second_client: float = 0.0
    multipliers: Dict[str, float] = {}
    cap_triggered: bool = False
    duplicate: bool = False


class DistributionEvent(BaseModel):
    """Broadcast after a distribution commits"""
    type: str = 'sleep-distributed'
    night_date: date
    total_points: float
    pool_size: int
    total_distributed: int
    participant_count: int


class SeasonInfo(BaseModel):
    """Current season snapshot with derived pool figures"""
    season_number: int
    start_date: date
    current_week: int
    total_weeks: int
    active_devices: int
    total_points: float
    total_tokens_distributed: int
    total_nights_processed: int
    status: str
    pool_per_night: int
    weeks_remaining: int
    nights_remaining: int


class SessionHistoryEntry(BaseModel):
    """One past night as shown in a participant's history"""
    session_id: int
    night_date: date
    minutes_active: int
    storage_amount: int
    points: int
    multipliers: Dict[str, float] = {}
    tokens_awarded: int = 0
    status: str
    processed: bool
