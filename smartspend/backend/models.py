import time
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, List, Optional

CATEGORIES = (
    'Groceries', 'Outings', 'BodyCare', 'Orders', 'Miscellaneous',
    'Petrol', 'Bills', 'Savings', 'Other',
)

BUCKET_WEEKLY = 'Weekly'
BUCKET_MONTHLY = 'Monthly'
BUCKET_SAVINGS = 'Savings'

# Every category lands in exactly one budget bucket
CATEGORY_BUCKET_MAP = {
    'Groceries': BUCKET_WEEKLY,
    'Outings': BUCKET_WEEKLY,
    'BodyCare': BUCKET_WEEKLY,
    'Orders': BUCKET_WEEKLY,
    'Miscellaneous': BUCKET_WEEKLY,
    'Petrol': BUCKET_WEEKLY,
    'Other': BUCKET_WEEKLY,
    'Bills': BUCKET_MONTHLY,
    'Savings': BUCKET_SAVINGS,
}


def is_valid_category(value) -> bool:
    return value in CATEGORIES


def bucket_for(category: str) -> Optional[str]:
    return CATEGORY_BUCKET_MAP.get(category)


@dataclass
class ParsedExpense:
    """Candidate expense produced by the parser or the AI classifier, not yet committed."""
    amount: Optional[float]
    category: Optional[str]
    description: str
    date: datetime = field(default_factory=datetime.now)

    def to_dict(self):
        return {
            'amount': self.amount,
            'category': self.category,
            'description': self.description,
            'date': self.date.isoformat(),
        }


@dataclass(frozen=True)
class Transaction:
    id: str
    amount: float
    category: str
    description: str
    date: str  # ISO date-time the expense is attributed to
    timestamp: int  # creation instant, ms since epoch

    def __post_init__(self):
        if not is_valid_category(self.category):
            raise ValueError(f"Invalid category: {self.category}")
        if self.amount is None or self.amount < 0:
            raise ValueError(f"Invalid amount: {self.amount}")
        if not self.description or not self.description.strip():
            object.__setattr__(self, 'description', f"{self.category} expense")

    @classmethod
    def from_parsed(cls, parsed: ParsedExpense, now: Optional[datetime] = None):
        now = now or datetime.now()
        timestamp = int(now.timestamp() * 1000)
        return cls(
            id=f"{timestamp}-{uuid.uuid4().hex[:6]}",
            amount=float(parsed.amount),
            category=parsed.category,
            description=parsed.description,
            date=parsed.date.isoformat(),
            timestamp=timestamp,
        )

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=str(data['id']),
            amount=float(data['amount']),
            category=data['category'],
            description=data.get('description', ''),
            date=data['date'],
            timestamp=int(data.get('timestamp') or time.time() * 1000),
        )

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class AlertItem:
    id: str  # deterministic, used for dedupe and dismissal
    type: str  # 'success', 'warning' or 'critical'
    title: str
    message: str

    def to_dict(self):
        return asdict(self)


@dataclass
class WeeklyStats:
    week_id: str  # "2024-W25"
    start_date: str
    end_date: str
    total_spent: float = 0.0
    total_saved: float = 0.0
    category_breakdown: Dict[str, float] = field(default_factory=dict)
    status: str = 'active'

    def to_dict(self):
        return {
            'weekId': self.week_id,
            'startDate': self.start_date,
            'endDate': self.end_date,
            'totalSpent': self.total_spent,
            'totalSaved': self.total_saved,
            'categoryBreakdown': dict(self.category_breakdown),
            'status': self.status,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            week_id=data['weekId'],
            start_date=data.get('startDate', ''),
            end_date=data.get('endDate', ''),
            total_spent=float(data.get('totalSpent', 0)),
            total_saved=float(data.get('totalSaved', 0)),
            category_breakdown=dict(data.get('categoryBreakdown') or {}),
            status=data.get('status', 'completed'),
        )


@dataclass
class MonthlyStats:
    month_id: str  # "2024-06"
    month_name: str  # "June 2024"
    total_spent: float = 0.0
    total_saved: float = 0.0
    category_breakdown: Dict[str, float] = field(default_factory=dict)
    weeks: List[WeeklyStats] = field(default_factory=list)
    is_finalized: bool = False

    def to_dict(self):
        return {
            'monthId': self.month_id,
            'monthName': self.month_name,
            'totalSpent': self.total_spent,
            'totalSaved': self.total_saved,
            'categoryBreakdown': dict(self.category_breakdown),
            'weeks': [w.to_dict() for w in self.weeks],
            'isFinalized': self.is_finalized,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            month_id=data['monthId'],
            month_name=data.get('monthName', ''),
            total_spent=float(data.get('totalSpent', 0)),
            total_saved=float(data.get('totalSaved', 0)),
            category_breakdown=dict(data.get('categoryBreakdown') or {}),
            weeks=[WeeklyStats.from_dict(w) for w in data.get('weeks') or []],
            is_finalized=bool(data.get('isFinalized', False)),
        )


@dataclass
class HistoryMeta:
    last_active_week: str  # "2024-W25"
    last_active_month: str  # "2024-06"

    def to_dict(self):
        return {
            'lastActiveWeek': self.last_active_week,
            'lastActiveMonth': self.last_active_month,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            last_active_week=data['lastActiveWeek'],
            last_active_month=data['lastActiveMonth'],
        )
