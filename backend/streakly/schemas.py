from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from uuid import UUID

CheckInTier = Literal["full", "half", "minimal"]
CheckInMood = Literal["happy", "tired", "stressed"]
AutoCheckinSource = Literal["none", "fitbit", "google_fit"]


class UserResponse(BaseModel):
    id: UUID
    email: str
    name: Optional[str] = None
    coins: int = Field(..., ge=0)
    freezeTokens: int = Field(..., ge=0)
    fitbitConnected: bool
    googleFitConnected: bool


class FreezeTokenPurchaseResponse(BaseModel):
    price: int = Field(..., ge=0)
    coins: int = Field(..., ge=0)
    freezeTokens: int = Field(..., ge=0)


class BadgeInfo(BaseModel):
    id: str
    name: str
    emoji: str
    description: str
    requiredDays: int
    color: str


class HabitCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=80)
    emoji: str = Field(default="🔥", min_length=1, max_length=16)
    color: str = Field(default="#f97316", pattern="^#[0-9a-fA-F]{6}$")
    targetDays: int = Field(default=0, ge=0, le=3650)
    autoCheckinSource: AutoCheckinSource = "none"
    autoCheckinMinSteps: int = Field(default=2000, ge=0, le=200000)
    autoCheckinMinMinutes: int = Field(default=10, ge=0, le=1440)


class HabitUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=80)
    emoji: Optional[str] = Field(default=None, min_length=1, max_length=16)
    color: Optional[str] = Field(default=None, pattern="^#[0-9a-fA-F]{6}$")
    targetDays: Optional[int] = Field(default=None, ge=0, le=3650)
    autoCheckinSource: Optional[AutoCheckinSource] = None
    autoCheckinMinSteps: Optional[int] = Field(default=None, ge=0, le=200000)
    autoCheckinMinMinutes: Optional[int] = Field(default=None, ge=0, le=1440)


class HabitResponse(BaseModel):
    id: UUID
    title: str
    emoji: str
    color: str
    targetDays: int
    currentStreak: int = Field(..., ge=0)
    longestStreak: int = Field(..., ge=0)
    lastCheckIn: Optional[str] = None
    stakeAmount: int
    stakeStatus: str
    autoCheckinSource: AutoCheckinSource
    autoCheckinMinSteps: int
    autoCheckinMinMinutes: int
    badges: List[BadgeInfo]
    nextBadge: Optional[BadgeInfo] = None
    badgeProgress: int = Field(..., ge=0, le=100)


class HabitListResponse(BaseModel):
    items: List[HabitResponse]


class CheckInRequest(BaseModel):
    tier: CheckInTier = "full"
    mood: Optional[CheckInMood] = None
    note: Optional[str] = Field(default=None, max_length=500)


class CheckInResponse(BaseModel):
    habitId: UUID
    date: str
    tier: CheckInTier
    currentStreak: int = Field(..., ge=0)
    longestStreak: int = Field(..., ge=0)
    freezeTokensUsed: int = Field(..., ge=0)
    frozenDates: List[str]
    streakBroken: bool
    stakeForfeited: bool
    coinsAwarded: int = Field(..., ge=0)
    newBadges: List[BadgeInfo]


class UndoCheckInResponse(BaseModel):
    habitId: UUID
    date: str
    currentStreak: int = Field(..., ge=0)
    longestStreak: int = Field(..., ge=0)
    lastCheckIn: Optional[str] = None
    coinsRevoked: int = Field(..., ge=0)


class CheckInItem(BaseModel):
    date: str
    status: Literal["checked_in", "frozen"]
    tier: CheckInTier
    mood: Optional[CheckInMood] = None
    note: Optional[str] = None


class CheckInListResponse(BaseModel):
    items: List[CheckInItem]


class StakeRequest(BaseModel):
    amount: int = Field(..., ge=1, le=1000000)


class StakeResponse(BaseModel):
    habitId: UUID
    stakeAmount: int
    stakeStatus: str
    coins: int = Field(..., ge=0)


class StakeClaimResponse(BaseModel):
    habitId: UUID
    payout: int = Field(..., ge=0)
    coins: int = Field(..., ge=0)
