from unittest.mock import MagicMock

import pytest

from kubestep.core.constants import StreamKind
from kubestep.core.exceptions import TransportError
from kubestep.execution.termination import TerminationManager

SELECTOR = "job-name=report-42"


@pytest.fixture
def subscriptions(fake_client):
    return [
        fake_client.watch(StreamKind.WORKLOAD, "batch", SELECTOR, MagicMock()),
        fake_client.watch(StreamKind.TASK, "batch", SELECTOR, MagicMock()),
    ]


def make_manager(client, cleanup_on_exit=True, submitted=True):
    manager = TerminationManager(
        client, "batch", "report-42", SELECTOR, cleanup_on_exit=cleanup_on_exit
    )
    if submitted:
        client.jobs["report-42"] = {"metadata": {"name": "report-42"}}
        manager.mark_submitted()
    return manager


class TestTerminationManager:
    """Tests for run cleanup."""

    def test_deletes_job_and_tasks(self, fake_client, subscriptions):
        fake_client.tasks[SELECTOR] = ["report-42-abcde", "report-42-fghij"]
        manager = make_manager(fake_client)

        manager.terminate(subscriptions)

        assert all(s.closed for s in subscriptions)
        assert fake_client.deleted_jobs == ["report-42"]
        assert fake_client.deleted_tasks == ["report-42-abcde", "report-42-fghij"]
        assert fake_client.close_calls == 1
        assert manager.terminated

    def test_only_first_call_acts(self, fake_client, subscriptions):
        manager = make_manager(fake_client)

        manager.terminate(subscriptions)
        manager.terminate(subscriptions)

        assert fake_client.deleted_jobs == ["report-42"]
        assert fake_client.close_calls == 1
        assert all(s.close_calls == 1 for s in subscriptions)

    def test_cleanup_disabled(self, fake_client, subscriptions):
        fake_client.tasks[SELECTOR] = ["report-42-abcde"]
        manager = make_manager(fake_client, cleanup_on_exit=False)

        manager.terminate(subscriptions)

        assert all(s.closed for s in subscriptions)
        assert fake_client.deleted_jobs == []
        assert fake_client.deleted_tasks == []
        assert fake_client.close_calls == 1

    def test_nothing_deleted_when_never_submitted(self, fake_client):
        manager = make_manager(fake_client, submitted=False)

        manager.terminate()

        assert fake_client.deleted_jobs == []
        assert fake_client.close_calls == 1

    def test_already_deleted_job_is_not_an_error(self, fake_client):
        manager = make_manager(fake_client)
        fake_client.jobs.clear()

        manager.terminate()

        assert fake_client.deleted_jobs == ["report-42"]

    def test_errors_are_collected_and_client_closed(self, fake_client):
        fake_client.tasks[SELECTOR] = ["report-42-abcde", "report-42-fghij"]
        fake_client.delete_job = MagicMock(
            side_effect=TransportError("Failed to delete job report-42", status=500)
        )
        fake_client.delete_task = MagicMock(
            side_effect=[TransportError("Failed to delete pod", status=503), True]
        )
        manager = make_manager(fake_client)

        with pytest.raises(TransportError) as exc_info:
            manager.terminate()

        assert "Failed to delete job report-42" in str(exc_info.value)
        assert "Failed to delete pod" in str(exc_info.value)
        assert fake_client.delete_task.call_count == 2
        assert fake_client.close_calls == 1

    def test_list_failure_stops_task_deletion(self, fake_client):
        fake_client.list_tasks = MagicMock(
            side_effect=TransportError("Failed to list pods")
        )
        manager = make_manager(fake_client)

        with pytest.raises(TransportError, match="Failed to list pods"):
            manager.terminate()

        assert fake_client.deleted_jobs == ["report-42"]
        assert fake_client.deleted_tasks == []
        assert fake_client.close_calls == 1
