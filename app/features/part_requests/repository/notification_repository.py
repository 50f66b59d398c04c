"""
Persistence for notification records.

Delivery is someone else's job: rows are created with sent = false and a
channel worker flips them later. The (event_key, user_id, channel) unique
index makes re-creating the same notification a no-op.
"""

from app.db.helpers import fetch_one
from app.features.part_requests.domain.models import NotificationChannel, NotificationRecord


class NotificationRepository:
    SELECT_COLUMNS = """
        id, user_id, channel, destination, message, event_key, sent, sent_at, created_at
    """

    @classmethod
    def _row_to_record(cls, row: dict | None) -> NotificationRecord | None:
        if not row:
            return None

        return NotificationRecord(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            channel=NotificationChannel(row["channel"]),
            destination=row["destination"],
            message=row["message"],
            event_key=row.get("event_key"),
            sent=bool(row.get("sent")),
            sent_at=row.get("sent_at"),
            created_at=row["created_at"],
        )

    @classmethod
    async def create(
        cls,
        user_id: str,
        channel: NotificationChannel,
        destination: str,
        message: str,
        event_key: str | None = None,
    ) -> NotificationRecord | None:
        query = f"""
            INSERT INTO notifications (user_id, channel, destination, message, event_key, sent)
            VALUES (%s, %s, %s, %s, %s, FALSE)
            ON CONFLICT (event_key, user_id, channel) DO NOTHING
            RETURNING {cls.SELECT_COLUMNS}
        """

        row = await fetch_one(query, (user_id, channel.value, destination, message, event_key))
        if row is None and event_key is not None:
            return await cls.get_by_event(event_key, user_id, channel)

        return cls._row_to_record(row)

    @classmethod
    async def get_by_event(
        cls, event_key: str, user_id: str, channel: NotificationChannel
    ) -> NotificationRecord | None:
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM notifications
            WHERE event_key = %s AND user_id = %s AND channel = %s
        """
        row = await fetch_one(query, (event_key, user_id, channel.value))
        return cls._row_to_record(row)
