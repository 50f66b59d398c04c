"""
Read access to user profiles. Profiles are owned by the auth/onboarding
side of the platform; this pipeline only reads them.
"""

from app.db.helpers import fetch_all, fetch_one
from app.features.part_requests.domain.models import Profile, UserType


class ProfileRepository:
    SELECT_COLUMNS = "id, user_type, first_name, last_name, phone, location, is_blocked"

    @classmethod
    def _row_to_profile(cls, row: dict | None) -> Profile | None:
        if not row:
            return None

        try:
            user_type = UserType(row.get("user_type") or UserType.BUYER.value)
        except ValueError:
            user_type = UserType.BUYER

        return Profile(
            id=str(row["id"]),
            user_type=user_type,
            first_name=row.get("first_name"),
            last_name=row.get("last_name"),
            phone=row.get("phone"),
            location=row.get("location"),
            is_blocked=bool(row.get("is_blocked")),
        )

    @classmethod
    async def get(cls, user_id: str) -> Profile | None:
        query = f"SELECT {cls.SELECT_COLUMNS} FROM profiles WHERE id = %s"
        return cls._row_to_profile(await fetch_one(query, (user_id,)))

    @classmethod
    async def find_suppliers_by_location(cls, location: str) -> list[Profile]:
        """Unblocked suppliers whose location contains `location` (case-insensitive)."""
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM profiles
            WHERE user_type = %s
              AND is_blocked = FALSE
              AND location ILIKE %s
            ORDER BY created_at ASC
        """

        pattern = f"%{location.strip()}%"
        rows = await fetch_all(query, (UserType.SUPPLIER.value, pattern))
        return [cls._row_to_profile(row) for row in rows]
