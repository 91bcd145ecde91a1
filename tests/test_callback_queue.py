"""Tests for the CallbackQueue state machine and drain algorithm."""

import logging

import pytest

from edgequeue.callbacks import CallbackQueue, QueueOptions, QueueState
from edgequeue.exceptions import DiagnosticKind


def recorder(calls, label):
    """Build a callback that records its label when invoked."""
    def callback(context):
        calls.append(label)
    return callback


class TestTriggerAndPush:
    """Test the waiting/triggered state machine."""

    def setup_method(self):
        """Set up test fixtures."""
        self.calls = []
        self.queue = CallbackQueue()

    def test_initial_state_is_waiting(self):
        """A new queue starts waiting with nothing queued."""
        assert self.queue.state is QueueState.WAITING
        assert self.queue.triggered is False
        assert len(self.queue) == 0

    def test_push_while_waiting_only_queues(self):
        """Pushing while waiting appends without invoking."""
        f = recorder(self.calls, "f")
        self.queue.push(f)

        assert self.calls == []
        assert self.queue.items == (f,)

    def test_trigger_invokes_items_in_push_order(self):
        """Every queued item runs exactly once, in push order, before trigger returns."""
        for label in ("a", "b", "c"):
            self.queue.push(recorder(self.calls, label))

        assert self.queue.trigger() is True

        assert self.calls == ["a", "b", "c"]
        assert len(self.queue) == 0
        assert self.queue.state is QueueState.TRIGGERED

    def test_trigger_is_idempotent_while_triggered(self):
        """A second trigger is a no-op that returns False."""
        self.queue.push(recorder(self.calls, "a"))
        self.queue.trigger()

        assert self.queue.trigger() is False
        assert self.calls == ["a"]

    def test_push_while_triggered_invokes_immediately(self):
        """Items pushed to a triggered queue run synchronously in the order given."""
        self.queue.trigger()

        self.queue.push(recorder(self.calls, "x"), recorder(self.calls, "y"))

        assert self.calls == ["x", "y"]
        assert len(self.queue) == 0

    def test_stop_resumes_queueing(self):
        """After stop, pushes are queued until the next trigger."""
        self.queue.trigger()
        assert self.queue.stop() is True
        assert self.queue.stop() is False

        self.queue.push(recorder(self.calls, "late"))
        assert self.calls == []

        self.queue.trigger()
        assert self.calls == ["late"]

    def test_stop_while_waiting_returns_false(self):
        """Stopping a waiting queue does nothing."""
        assert self.queue.stop() is False
        assert self.queue.state is QueueState.WAITING

    def test_full_lifecycle_scenario(self):
        """push, trigger, push, stop, push, trigger."""
        self.queue.push(recorder(self.calls, "f1"))
        self.queue.trigger()
        assert self.calls == ["f1"]
        assert self.queue.state is QueueState.TRIGGERED

        self.queue.push(recorder(self.calls, "f2"))
        assert self.calls == ["f1", "f2"]

        self.queue.stop()
        self.queue.push(recorder(self.calls, "f3"))
        assert self.calls == ["f1", "f2"]

        self.queue.trigger()
        assert self.calls == ["f1", "f2", "f3"]

    def test_push_returns_queue_for_chaining(self):
        """push returns the queue itself."""
        result = self.queue.push(recorder(self.calls, "a")).push(recorder(self.calls, "b"))

        assert result is self.queue
        assert len(self.queue) == 2

    def test_push_flattens_groups(self):
        """Lists and tuples passed to push are flattened in order."""
        a, b, c = (recorder(self.calls, label) for label in "abc")
        self.queue.push([a, (b,)], c)
        self.queue.trigger()

        assert self.calls == ["a", "b", "c"]


class TestDrain:
    """Test reentrancy, context binding and skipping during a drain."""

    def test_items_pushed_during_drain_run_in_same_drain(self):
        """Work scheduled by a callback runs after the items already queued."""
        calls = []
        queue = CallbackQueue()

        def first(context):
            calls.append("first")
            queue.push(recorder(calls, "scheduled"))

        queue.push(first, recorder(calls, "second"))
        queue.trigger()

        assert calls == ["first", "second", "scheduled"]
        assert len(queue) == 0

    def test_push_from_callback_while_triggered_keeps_fifo(self):
        """A callback run by push may push more work; it runs after the callback."""
        calls = []
        queue = CallbackQueue()
        queue.trigger()

        def outer(context):
            queue.push(recorder(calls, "inner"))
            calls.append("outer")

        queue.push(outer)

        assert calls == ["outer", "inner"]

    def test_items_receive_bind_context(self):
        """Each item is called with the queue's current context."""
        seen = []
        queue = CallbackQueue(bind={"granted": []})
        queue.push(lambda context: seen.append(context))

        queue.bind = {"granted": ["email"]}
        queue.trigger()

        assert seen == [{"granted": ["email"]}]

    def test_non_callable_items_are_skipped(self, caplog):
        """Non-callable entries are accepted and skipped when their turn comes."""
        calls = []
        queue = CallbackQueue(name="mixed")
        queue.push("not a function", recorder(calls, "f"))

        with caplog.at_level(logging.DEBUG, logger="edgequeue.callbacks.callback_queue"):
            queue.trigger()

        assert calls == ["f"]
        assert len(queue) == 0
        assert [d.kind for d in queue.diagnostics] == [DiagnosticKind.SILENT_SKIP]
        assert "skipping non-callable item" in caplog.text

    def test_callback_exception_propagates(self):
        """A raising callback aborts the drain; the rest stay queued."""
        calls = []
        queue = CallbackQueue()

        def broken(context):
            raise RuntimeError("boom")

        queue.push(broken, recorder(calls, "after"))

        with pytest.raises(RuntimeError, match="boom"):
            queue.trigger()

        assert calls == []
        assert len(queue) == 1
        assert queue.state is QueueState.TRIGGERED

        # The queue stays usable: the next push drains what was left
        queue.push(recorder(calls, "next"))
        assert calls == ["after", "next"]

    def test_raising_item_still_fires_trigger_edge(self):
        """The trigger edge is delivered even when the drain it concludes raises."""
        edges = []
        queue = CallbackQueue()
        queue.add_trigger_edge_listener(lambda context: edges.append("trigger"))

        def broken(context):
            raise RuntimeError("boom")

        queue.push(broken)

        with pytest.raises(RuntimeError, match="boom"):
            queue.trigger()

        assert edges == ["trigger"]
        assert queue.state is QueueState.TRIGGERED
        assert queue.trigger() is False
        assert edges == ["trigger"]


class TestRefireRequeue:
    """Test self-resetting and self-repopulating queues."""

    def test_refire_returns_to_waiting_after_drain(self):
        """A refire queue stops itself once the drain finishes."""
        calls = []
        stops = []
        queue = CallbackQueue(refire=True)
        queue.add_stop_edge_listener(lambda context: stops.append(1))
        queue.push(recorder(calls, "a"))

        assert queue.trigger() is True

        assert calls == ["a"]
        assert queue.state is QueueState.WAITING
        assert stops == [1]
        assert len(queue) == 0

    def test_refire_queue_can_trigger_again(self):
        """Without requeue, a refire queue only runs what was pushed since the last drain."""
        calls = []
        queue = CallbackQueue(refire=True)
        queue.push(recorder(calls, "a"))
        queue.trigger()
        queue.push(recorder(calls, "b"))

        assert calls == ["a"]
        assert queue.trigger() is True
        assert calls == ["a", "b"]

    def test_requeue_restores_pre_drain_items(self):
        """Items present at drain start are queued again, unexecuted, after the automatic stop."""
        calls = []
        queue = CallbackQueue(refire=True, requeue=True)
        scheduled = recorder(calls, "scheduled")

        def first(context):
            calls.append("first")
            queue.push(scheduled)

        queue.push(first)
        queue.trigger()

        assert calls == ["first", "scheduled"]
        assert queue.items == (first,)
        assert queue.state is QueueState.WAITING

        queue.trigger()
        assert calls == ["first", "scheduled", "first", "scheduled"]
        assert queue.items == (first,)

    def test_requeue_without_refire_is_neutralised(self, caplog):
        """requeue without refire logs a configuration warning and never requeues."""
        calls = []
        with caplog.at_level(logging.WARNING, logger="edgequeue.callbacks.callback_queue"):
            queue = CallbackQueue(requeue=True, name="misconfigured")

        assert queue.requeue is False
        assert queue.diagnostics[0].kind is DiagnosticKind.CONFIGURATION_ERROR
        assert "refire must be enabled to use requeue" in caplog.text

        queue.push(recorder(calls, "a"))
        queue.trigger()

        assert calls == ["a"]
        assert len(queue) == 0
        assert queue.state is QueueState.TRIGGERED

    def test_refire_requeue_exception_restores_snapshot(self):
        """A raising item still leaves a requeue queue waiting with its snapshot."""
        calls = []
        queue = CallbackQueue(refire=True, requeue=True)
        ok = recorder(calls, "ok")

        def broken(context):
            raise ValueError("bad listener")

        queue.push(ok, broken)

        with pytest.raises(ValueError):
            queue.trigger()

        assert calls == ["ok"]
        assert queue.state is QueueState.WAITING
        assert queue.items == (ok, broken)

    def test_raising_stop_listener_keeps_requeued_items(self):
        """A stop listener that raises does not cost a requeue queue its items."""
        calls = []
        queue = CallbackQueue(refire=True, requeue=True)
        item = recorder(calls, "item")
        queue.push(item)

        def broken_listener(context):
            raise RuntimeError("listener failed")

        queue.add_stop_edge_listener(broken_listener)

        with pytest.raises(RuntimeError, match="listener failed"):
            queue.trigger()

        assert calls == ["item"]
        assert queue.state is QueueState.WAITING
        assert queue.items == (item,)
        assert queue.describe()["stop_edge"]["pending"] == 1

        with pytest.raises(RuntimeError):
            queue.trigger()
        assert calls == ["item", "item"]
        assert queue.items == (item,)


class TestQueueContents:
    """Test construction, remove, empty and introspection."""

    def test_prepopulated_stack_is_flattened_and_compacted(self):
        """Nested groups are flattened; None and empty groups are dropped."""
        calls = []
        f1, f2, f3 = (recorder(calls, label) for label in ("f1", "f2", "f3"))
        queue = CallbackQueue(prepopulated_stack=[f1, [f2, None, [f3]], []])

        assert queue.items == (f1, f2, f3)

    def test_single_prepopulated_item(self):
        """A bare callable is accepted as the prepopulated stack."""
        f = recorder([], "f")
        assert CallbackQueue(prepopulated_stack=f).items == (f,)

    def test_remove_by_identity(self):
        """remove drops the first identical entry only."""
        calls = []
        f = recorder(calls, "f")
        g = recorder(calls, "g")
        queue = CallbackQueue().push(f, g, f)

        assert queue.remove(f) is True
        assert queue.items == (g, f)

    def test_remove_absent_item_is_noop(self):
        """Removing something that is not queued changes nothing."""
        f = recorder([], "f")
        queue = CallbackQueue().push(f)

        assert queue.remove(recorder([], "other")) is False
        assert queue.items == (f,)

    def test_empty_keeps_state(self):
        """empty clears items without changing state."""
        queue = CallbackQueue()
        queue.push(recorder([], "a"), recorder([], "b"))
        queue.empty()

        assert len(queue) == 0
        assert queue.state is QueueState.WAITING

    def test_describe_reports_edges(self):
        """describe includes nested edge queues once created."""
        queue = CallbackQueue(name="loaded", refire=True)
        queue.push(recorder([], "a"))
        assert queue.describe() == {
            "name": "loaded",
            "state": "waiting",
            "refire": True,
            "requeue": False,
            "pending": 1,
        }

        queue.add_trigger_edge_listener(lambda context: None)
        edge = queue.describe()["trigger_edge"]
        assert edge["name"] == "loaded.trigger_edge"
        assert edge["refire"] is True
        assert edge["requeue"] is True
        assert edge["pending"] == 1
        assert "stop_edge" not in queue.describe()

    def test_repr(self):
        queue = CallbackQueue(name="connected")
        assert repr(queue) == "<CallbackQueue 'connected' waiting pending=0>"


class TestConstruction:
    """Test options and two-phase construction."""

    def test_create_wires_construction_listeners(self):
        """create attaches trigger_callback and stop_callback."""
        events = []
        queue = CallbackQueue.create(
            trigger_callback=lambda context: events.append("trigger"),
            stop_callback=lambda context: events.append("stop")
        )

        assert queue.describe()["trigger_edge"]["pending"] == 1
        queue.trigger()
        queue.stop()

        assert events == ["trigger", "stop"]

    def test_unwired_queue_wires_on_first_trigger(self):
        """Construction listeners still see the first trigger edge."""
        events = []
        queue = CallbackQueue(trigger_callback=lambda context: events.append("trigger"))

        assert "trigger_edge" not in queue.describe()
        queue.trigger()

        assert events == ["trigger"]

    def test_wire_is_idempotent(self):
        """Wiring twice does not register listeners twice."""
        events = []
        queue = CallbackQueue(trigger_callback=lambda context: events.append("trigger"))
        queue.wire().wire()
        queue.trigger()

        assert events == ["trigger"]

    def test_from_options(self):
        """A QueueOptions record builds an equivalent queue."""
        calls = []
        options = QueueOptions(
            bind="ctx",
            refire=True,
            requeue=True,
            prepopulated_stack=[lambda context: calls.append(context)],
            name="permission_change"
        )
        queue = CallbackQueue.from_options(options)
        queue.trigger()

        assert calls == ["ctx"]
        assert queue.name == "permission_change"
        assert queue.state is QueueState.WAITING
        assert len(queue) == 1

    def test_options_validate(self):
        """QueueOptions reports bad combinations."""
        assert QueueOptions().validate() == []
        assert QueueOptions(requeue=True).validate() == ["refire must be enabled to use requeue"]
        assert QueueOptions(trigger_callback="nope").validate() == [
            "trigger_callback must be callable, got str"
        ]
