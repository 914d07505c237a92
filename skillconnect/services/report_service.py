"""
ReportService - analytics for the admin dashboard.

Provides:
- Account totals (active users, providers, total population)
- Demographics (age groups, employment)
- Skill distribution across users and across providers
- Most booked services
- New registrations per month

Banned accounts are excluded everywhere except total population.
Used by: /reports endpoints
"""
from collections import Counter
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from skillconnect.lib.db import utcnow
from skillconnect.lib.logging import get_logger
from skillconnect.models.bookings import Booking, BookingStatus
from skillconnect.models.service_requests import ServiceRequest, ServiceRequestStatus
from skillconnect.models.users import EmploymentStatus, User, UserRole


logger = get_logger(__name__)

AGE_GROUPS: List[Tuple[str, int, Optional[int]]] = [
    ("18-25", 18, 25),
    ("26-35", 26, 35),
    ("36-45", 36, 45),
    ("46-55", 46, 55),
    ("56-65", 56, 65),
    ("65+", 66, None),
]


def age_on(birthdate: date, today: date) -> int:
    years = today.year - birthdate.year
    if (today.month, today.day) < (birthdate.month, birthdate.day):
        years -= 1
    return years


def age_group(age: int) -> Optional[str]:
    """Bucket label, or None for minors."""
    for label, low, high in AGE_GROUPS:
        if age >= low and (high is None or age <= high):
            return label
    return None


def month_offsets(today: date, months: int) -> List[Tuple[int, int]]:
    """(year, month) pairs for the last ``months`` months, oldest first, ending with today's month."""
    pairs = []
    for back in range(months - 1, -1, -1):
        index = today.year * 12 + (today.month - 1) - back
        pairs.append((index // 12, index % 12 + 1))
    return pairs


def _count_skills(skill_lists) -> Dict[str, int]:
    counts: Counter = Counter()
    for skills in skill_lists:
        for skill in skills or []:
            if skill and skill.strip():
                counts[skill.strip()] += 1
    return dict(counts)


class ReportService:
    """
    Service for dashboard reports.

    Aggregation happens in Python over narrow column selects.
    """

    def __init__(self, db: Session):
        self.db = db

    def _active_users(self):
        return User.banned.is_(False)

    def totals(self) -> Dict[str, int]:
        total_users = self.db.execute(
            select(func.count()).select_from(User).where(self._active_users())
        ).scalar_one()
        service_providers = self.db.execute(
            select(func.count()).select_from(User).where(
                self._active_users(),
                User.role == UserRole.SERVICE_PROVIDER,
            )
        ).scalar_one()
        total_population = self.db.execute(select(func.count()).select_from(User)).scalar_one()

        return {
            "totalUsers": total_users,
            "serviceProviders": service_providers,
            "totalPopulation": total_population,
        }

    def demographics(self, today: Optional[date] = None) -> Dict[str, Any]:
        """
        Age groups from birthdate and employment split.

        Returns:
            {
                'ageGroups': {'18-25': n, ..., '65+': n},
                'employment': {'worker': n, 'nonWorker': n}
            }
        """
        today = today or utcnow().date()
        age_groups = {label: 0 for label, _, _ in AGE_GROUPS}
        employment = {"worker": 0, "nonWorker": 0}

        rows = self.db.execute(
            select(User.birthdate, User.employed).where(self._active_users())
        ).all()
        for birthdate, employed in rows:
            if birthdate is not None:
                label = age_group(age_on(birthdate, today))
                if label is not None:
                    age_groups[label] += 1
            if employed == EmploymentStatus.EMPLOYED:
                employment["worker"] += 1
            elif employed == EmploymentStatus.UNEMPLOYED:
                employment["nonWorker"] += 1

        return {"ageGroups": age_groups, "employment": employment}

    def skills(self) -> Dict[str, int]:
        """Skill name → number of active users listing it."""
        rows = self.db.execute(select(User.skills).where(self._active_users())).scalars().all()
        return _count_skills(rows)

    def skilled_per_trade(self) -> Dict[str, Dict[str, int]]:
        rows = self.db.execute(
            select(User.skills).where(
                self._active_users(),
                User.role == UserRole.SERVICE_PROVIDER,
            )
        ).scalars().all()
        by_role = {UserRole.SERVICE_PROVIDER.value: len(rows)} if rows else {}
        return {"byRole": by_role, "bySkill": _count_skills(rows)}

    def most_booked_services(self) -> Dict[str, int]:
        """
        Type of work → completed bookings.

        Falls back to Working/Complete requests when nothing has completed yet.
        """
        rows = self.db.execute(
            select(ServiceRequest.type_of_work)
            .join(Booking, Booking.service_request_id == ServiceRequest.id)
            .where(Booking.status == BookingStatus.COMPLETE)
        ).scalars().all()

        if not rows:
            rows = self.db.execute(
                select(ServiceRequest.type_of_work).where(
                    ServiceRequest.status.in_([ServiceRequestStatus.WORKING, ServiceRequestStatus.COMPLETE])
                )
            ).scalars().all()

        return dict(Counter(work for work in rows if work))

    def totals_over_time(self, months: int = 12, now: Optional[datetime] = None) -> Dict[str, List]:
        """
        New active registrations per calendar month.

        Returns:
            {'labels': ['Jan 2026', ...], 'values': [n, ...]} oldest first
        """
        now = now or utcnow()
        buckets = month_offsets(now.date(), months)
        first_year, first_month = buckets[0]
        start = datetime(first_year, first_month, 1, tzinfo=now.tzinfo)

        created = self.db.execute(
            select(User.created_at).where(
                self._active_users(),
                User.created_at >= start,
                User.created_at <= now,
            )
        ).scalars().all()

        monthly = Counter((stamp.year, stamp.month) for stamp in created)
        labels = [date(year, month, 1).strftime("%b %Y") for year, month in buckets]
        values = [monthly.get((year, month), 0) for year, month in buckets]

        logger.info("Computed registrations over time", extra={"months": months, "users": len(created)})
        return {"labels": labels, "values": values}
