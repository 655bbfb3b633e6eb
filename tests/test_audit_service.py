"""Tests for AuditService and the audit change shapes.

Mostly uses a mock AuditLogRepository. TestAuditExportOnDatabase runs an
export end to end on the in-memory database; repository ordering and
filtering are covered in test_repositories.py.
"""

import csv
import io
import json
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from content_lifecycle_engine.adapters.audit_log import AuditLogRepository
from content_lifecycle_engine.core.interfaces import ActorContext
from content_lifecycle_engine.core.models import AuditLog
from content_lifecycle_engine.core.services import EXPORT_CSV_HEADER, AuditService, build_changes
from content_lifecycle_engine.errors import ConflictError, NotFoundError, ValidationError
from tests.conftest import START, SteppingClock, make_fake_audit_entry


# ---------------------------------------------------------------------------
# build_changes tests
# ---------------------------------------------------------------------------


class TestBuildChanges:
    """Tests for the per-action shape of the audit ``changes`` payload."""

    OLD = {"id": 3, "title": "Greetings", "status": "draft"}
    NEW = {"id": 3, "title": "Hello", "status": "published"}

    def test_update_is_a_field_diff(self) -> None:
        assert build_changes("update", self.OLD, self.NEW) == {
            "title": {"old": "Greetings", "new": "Hello"},
            "status": {"old": "draft", "new": "published"},
        }

    def test_create_is_the_flat_new_state(self) -> None:
        assert build_changes("create", {}, self.NEW) == self.NEW

    def test_delete_is_the_flat_old_state(self) -> None:
        assert build_changes("delete", self.OLD, {}) == self.OLD

    @pytest.mark.parametrize("action", ["publish", "unpublish", "archive", "status_update"])
    def test_status_actions_record_status_only(self, action: str) -> None:
        changes = build_changes(action, self.OLD, self.NEW, {"reason": "scheduled"})

        assert changes == {"status": {"old": "draft", "new": "published"}, "reason": "scheduled"}

    def test_other_actions_merge_diff_and_metadata(self) -> None:
        changes = build_changes("restore_version", self.OLD, self.NEW, {"version_id": 9, "version_label": "manual"})

        assert changes["title"] == {"old": "Greetings", "new": "Hello"}
        assert changes["version_id"] == 9
        assert changes["version_label"] == "manual"


# ---------------------------------------------------------------------------
# AuditService tests
# ---------------------------------------------------------------------------


class TestAuditService:
    """Tests for AuditService — writes, queries, export and statistics."""

    def _make_service(self, audit_repo: AsyncMock, clock: SteppingClock | None = None) -> AuditService:
        """Construct an AuditService with a mock repository and a fixed clock."""
        return AuditService(audit_repo=audit_repo, clock=clock or SteppingClock())

    @pytest.mark.asyncio()
    async def test_record_passes_actor_context_and_clock(
        self,
        mock_audit_repo: AsyncMock,
        actor: ActorContext,
    ) -> None:
        """record() stores who acted, from where, and when."""
        service = self._make_service(mock_audit_repo)

        entry = await service.record(
            actor=actor,
            action="update",
            area="units",
            auditable_type="Unit",
            auditable_id=3,
            old_values={"title": "a"},
            new_values={"title": "b"},
        )

        kwargs = mock_audit_repo.append.call_args.kwargs
        assert kwargs["user_id"] == actor.actor_id
        assert kwargs["ip_address"] == "203.0.113.5"
        assert kwargs["user_agent"] == "pytest-agent"
        assert kwargs["performed_at"] == START
        assert kwargs["status"] == "success"
        assert entry.changes == {"title": {"old": "a", "new": "b"}}

    @pytest.mark.asyncio()
    async def test_record_for_system_actor_has_no_user(self, mock_audit_repo: AsyncMock) -> None:
        """System actions are stored with a null user and described as System."""
        service = self._make_service(mock_audit_repo)

        entry = await service.record(
            actor=ActorContext.system(),
            action="archive",
            area="lessons",
            auditable_type="Lesson",
            auditable_id=1,
            old_values={"status": "published"},
            new_values={"status": "archived"},
        )

        assert entry.user_id is None
        assert entry.describe() == "System archive in lessons (success)"

    @pytest.mark.asyncio()
    async def test_record_rejects_unknown_status(self, mock_audit_repo: AsyncMock, actor: ActorContext) -> None:
        """Only success, failure and error are valid outcomes."""
        service = self._make_service(mock_audit_repo)

        with pytest.raises(ValidationError):
            await service.record(actor, "update", "units", "Unit", 1, status="maybe")

        mock_audit_repo.append.assert_not_called()

    def test_service_has_no_update_or_delete(self, mock_audit_repo: AsyncMock) -> None:
        """The audit trail is append-only at the service level too."""
        service = self._make_service(mock_audit_repo)

        assert not hasattr(service, "update")
        assert not hasattr(service, "delete")

    @pytest.mark.asyncio()
    async def test_query_uses_default_sort_and_page_size(self, mock_audit_repo: AsyncMock) -> None:
        """Defaults are performed_at desc with 15 entries per page."""
        mock_audit_repo.query.return_value = ([make_fake_audit_entry()], 31)
        service = self._make_service(mock_audit_repo)

        page = await service.query()

        kwargs = mock_audit_repo.query.call_args.kwargs
        assert kwargs["sort_by"] == "performed_at"
        assert kwargs["sort_order"] == "desc"
        assert kwargs["per_page"] == 15
        assert page.total == 31
        assert page.last_page == 3

    @pytest.mark.asyncio()
    @pytest.mark.parametrize(
        ("kwargs", "field"),
        [
            ({"sort_by": "user_agent"}, "sort_by"),
            ({"sort_order": "sideways"}, "sort_order"),
            ({"status": "unknown"}, "status"),
            ({"per_page": 0}, "per_page"),
            ({"per_page": 101}, "per_page"),
            ({"page": 0}, "page"),
            ({"start_date": START, "end_date": START - timedelta(days=1)}, "end_date"),
        ],
    )
    async def test_query_rejects_invalid_parameters(
        self,
        mock_audit_repo: AsyncMock,
        kwargs: dict,
        field: str,
    ) -> None:
        """Invalid query parameters raise ValidationError naming the field."""
        service = self._make_service(mock_audit_repo)

        with pytest.raises(ValidationError) as exc_info:
            await service.query(**kwargs)

        assert exc_info.value.field == field
        mock_audit_repo.query.assert_not_called()

    @pytest.mark.asyncio()
    async def test_export_requires_both_dates(self, mock_audit_repo: AsyncMock) -> None:
        """A missing start or end date is a conflict."""
        service = self._make_service(mock_audit_repo)

        with pytest.raises(ConflictError):
            await service.export(start_date=None, end_date=START)
        with pytest.raises(ConflictError):
            await service.export(start_date=START, end_date=None)

    @pytest.mark.asyncio()
    async def test_export_rejects_inverted_range(self, mock_audit_repo: AsyncMock) -> None:
        """start_date after end_date is a validation error."""
        service = self._make_service(mock_audit_repo)

        with pytest.raises(ValidationError):
            await service.export(start_date=START, end_date=START - timedelta(days=1))

    @pytest.mark.asyncio()
    async def test_export_rejects_ranges_over_366_days(self, mock_audit_repo: AsyncMock) -> None:
        """A 400-day window is refused before the database is touched."""
        service = self._make_service(mock_audit_repo)

        with pytest.raises(ConflictError):
            await service.export(start_date=START - timedelta(days=400), end_date=START)

        mock_audit_repo.list_all.assert_not_called()

    @pytest.mark.asyncio()
    async def test_export_accepts_exactly_366_days(self, mock_audit_repo: AsyncMock) -> None:
        """The maximum window itself is allowed."""
        mock_audit_repo.list_all.return_value = [make_fake_audit_entry()]
        service = self._make_service(mock_audit_repo)

        export = await service.export(start_date=START - timedelta(days=366), end_date=START)

        assert export.count == 1

    @pytest.mark.asyncio()
    async def test_export_with_no_entries_is_not_found(self, mock_audit_repo: AsyncMock) -> None:
        """An empty result is reported instead of an empty file."""
        service = self._make_service(mock_audit_repo)

        with pytest.raises(NotFoundError):
            await service.export(start_date=START - timedelta(days=30), end_date=START)

    @pytest.mark.asyncio()
    async def test_export_csv_layout(self, mock_audit_repo: AsyncMock) -> None:
        """CSV exports carry the fixed header and one row per entry in repository order."""
        mock_audit_repo.list_all.return_value = [
            make_fake_audit_entry(entry_id=1, user_id=None, performed_at=START - timedelta(days=2)),
            make_fake_audit_entry(entry_id=2, user_id=7, action="update", performed_at=START - timedelta(days=1)),
        ]
        service = self._make_service(mock_audit_repo)

        export = await service.export(start_date=START - timedelta(days=30), end_date=START)

        rows = list(csv.reader(io.StringIO(export.content)))
        assert rows[0] == EXPORT_CSV_HEADER
        assert [row[0] for row in rows[1:]] == ["1", "2"]
        assert rows[1][1] == "System"
        assert rows[1][8] == "System publish in units (success)"
        assert rows[2][1] == "User 7"
        assert rows[2][7] == (START - timedelta(days=1)).isoformat()
        assert export.media_type == "text/csv"
        assert export.filename.startswith("audit_logs_")
        assert export.filename.endswith(".csv")

    @pytest.mark.asyncio()
    async def test_export_json_layout(self, mock_audit_repo: AsyncMock) -> None:
        """JSON exports are a list of entry objects."""
        mock_audit_repo.list_all.return_value = [make_fake_audit_entry()]
        service = self._make_service(mock_audit_repo)

        export = await service.export(
            start_date=START - timedelta(days=30),
            end_date=START,
            export_format="json",
        )

        payload = json.loads(export.content)
        assert export.media_type == "application/json"
        assert payload[0]["action"] == "publish"
        assert payload[0]["user"] == "User 7"
        assert payload[0]["changes"] == {"status": {"old": "draft", "new": "published"}}

    @pytest.mark.asyncio()
    async def test_export_rejects_unknown_format(self, mock_audit_repo: AsyncMock) -> None:
        service = self._make_service(mock_audit_repo)

        with pytest.raises(ValidationError):
            await service.export(start_date=START - timedelta(days=1), end_date=START, export_format="xml")

    @pytest.mark.asyncio()
    async def test_export_accepts_naive_dates_as_utc(self, mock_audit_repo: AsyncMock) -> None:
        """Naive query dates are treated as UTC."""
        mock_audit_repo.list_all.return_value = [make_fake_audit_entry()]
        service = self._make_service(mock_audit_repo)

        await service.export(start_date=datetime(2026, 2, 1), end_date=datetime(2026, 3, 1))

        kwargs = mock_audit_repo.list_all.call_args.kwargs
        assert kwargs["start_date"] == datetime(2026, 2, 1, tzinfo=UTC)
        assert kwargs["end_date"] == datetime(2026, 3, 1, tzinfo=UTC)

    @pytest.mark.asyncio()
    async def test_statistics_default_window_and_shape(self, mock_audit_repo: AsyncMock) -> None:
        """Statistics cover the last 30 days by default and aggregate every dimension."""

        async def count_by(column: str, start_date: datetime, end_date: datetime, limit: int | None = None) -> list:
            return {
                "status": [("success", 5), ("failure", 1)],
                "action": [("publish", 4), ("update", 2)],
                "area": [("units", 6)],
                "user_id": [(7, 5), (None, 1)],
            }[column]

        mock_audit_repo.count_by.side_effect = count_by
        mock_audit_repo.count_per_day.return_value = [("2026-02-28", 2), ("2026-03-01", 4)]
        service = self._make_service(mock_audit_repo)

        stats = await service.statistics()

        start_date, end_date = mock_audit_repo.count_per_day.call_args.args
        assert end_date == START
        assert end_date - start_date == timedelta(days=30)
        assert stats["total_actions"] == 6
        assert stats["by_status"] == {"success": 5, "failure": 1}
        assert stats["top_actions"][0] == {"action": "publish", "count": 4}
        assert stats["top_users"] == [{"user_id": 7, "count": 5}, {"user_id": None, "count": 1}]
        assert stats["timeline"][-1] == {"date": "2026-03-01", "count": 4}


class TestAuditExportOnDatabase:
    """AuditService.export() over the real repository and the in-memory database."""

    @pytest.mark.asyncio()
    async def test_thirty_day_export_is_inclusive_and_ascending(self, session: AsyncSession) -> None:
        """Both window bounds are inclusive and entries come out oldest first."""
        repo = AuditLogRepository(session)
        service = AuditService(audit_repo=repo, clock=SteppingClock())
        window_start = START - timedelta(days=30)

        async def append(performed_at: datetime, action: str) -> AuditLog:
            return await repo.append(
                user_id=7,
                action=action,
                area="units",
                auditable_type="Unit",
                auditable_id=3,
                status="success",
                changes={},
                ip_address=None,
                user_agent=None,
                performed_at=performed_at,
            )

        at_end = await append(START, "publish")
        middle = await append(START - timedelta(days=12), "update")
        await append(window_start - timedelta(seconds=1), "create")
        at_start = await append(window_start, "update")
        await append(START + timedelta(seconds=1), "archive")
        await session.commit()

        export = await service.export(start_date=window_start, end_date=START, export_format="json")

        payload = json.loads(export.content)
        assert export.count == 3
        assert [entry["id"] for entry in payload] == [at_start.id, middle.id, at_end.id]
        assert payload[0]["performed_at"] == window_start.isoformat()
        assert payload[-1]["performed_at"] == START.isoformat()
