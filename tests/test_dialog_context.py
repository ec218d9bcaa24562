"""Tests for DialogContext stack operations, containers and waterfalls."""
import pytest
from pydantic import ValidationError

from dialogs import ComponentDialog, Dialog, DialogContext, DialogSet, WaterfallDialog
from dialogs.errors import DialogConfigurationError, DialogContextError, DialogEngineError
from models.schemas import (
    ActivityTypes, DialogEvents, DialogInstance, DialogReason, DialogState, DialogTurnStatus,
)
from prompts import TextPrompt


# ──────────────────────────────────────────────────────────────
#  Helpers
# ──────────────────────────────────────────────────────────────

class ParentDialog(Dialog):
    """Starts `child_id` and records what it resumes with."""

    def __init__(self, dialog_id: str, child_id: str):
        super().__init__(dialog_id)
        self.child_id = child_id
        self.resumed: list[tuple] = []
        self.ended: list[DialogReason] = []

    async def begin_dialog(self, dc, options=None):
        return await dc.begin_dialog(self.child_id)

    async def resume_dialog(self, dc, reason, result=None):
        self.resumed.append((reason, result))
        return Dialog.END_OF_TURN

    async def end_dialog(self, context, instance, reason):
        self.ended.append(reason)


class WaitThenEnd(Dialog):
    """Waits one turn, then ends with a fixed result."""

    def __init__(self, dialog_id: str, result=None):
        super().__init__(dialog_id)
        self.result = result
        self.ended: list[DialogReason] = []

    async def begin_dialog(self, dc, options=None):
        dc.active_dialog.state["options"] = options
        return Dialog.END_OF_TURN

    async def continue_dialog(self, dc):
        return await dc.end_dialog(self.result)

    async def end_dialog(self, context, instance, reason):
        self.ended.append(reason)


async def run_turn(dialogs: DialogSet, state, context, root: str):
    dc = await dialogs.create_context(context)
    result = await dc.continue_dialog()
    if result.status == DialogTurnStatus.EMPTY:
        result = await dc.begin_dialog(root)
    await state.save_changes(context)
    return result


@pytest.fixture
def dialogs(conversation_state) -> DialogSet:
    return DialogSet(conversation_state.create_property("DialogState"))


# ──────────────────────────────────────────────────────────────
#  Stack operations
# ──────────────────────────────────────────────────────────────

class TestStackOperations:
    @pytest.mark.asyncio
    async def test_round_trip_child_result_reaches_parent(self, dialogs, turn):
        parent = ParentDialog("A", child_id="B")
        dialogs.add(parent).add(WaitThenEnd("B", result="R"))
        context = turn("hi")
        dc = await dialogs.create_context(context)

        result = await dc.begin_dialog("A")
        assert result.status == DialogTurnStatus.WAITING
        assert [f.id for f in dc.stack] == ["B", "A"]

        result = await dc.continue_dialog()
        assert parent.resumed == [(DialogReason.END_CALLED, "R")]
        assert len(dc.stack) == 1
        assert dc.active_dialog.id == "A"
        assert result.status == DialogTurnStatus.WAITING
        assert dc.state.get_value("turn.lastresult") == "R"

    @pytest.mark.asyncio
    async def test_ending_last_frame_completes(self, dialogs, turn):
        dialogs.add(WaitThenEnd("only", result=42))
        dc = await dialogs.create_context(turn("hi"))
        await dc.begin_dialog("only")

        result = await dc.continue_dialog()
        assert result.status == DialogTurnStatus.COMPLETE
        assert result.result == 42
        assert dc.stack == []

    @pytest.mark.asyncio
    async def test_continue_on_empty_stack(self, dialogs, turn):
        dc = await dialogs.create_context(turn("hi"))
        result = await dc.continue_dialog()
        assert result.status == DialogTurnStatus.EMPTY

    @pytest.mark.asyncio
    async def test_begin_records_version_and_options(self, dialogs, turn):
        dialogs.add(WaitThenEnd("w"))
        dc = await dialogs.create_context(turn("hi"))
        await dc.begin_dialog("w", {"x": 1})

        assert dc.active_dialog.version == "w"
        assert dc.active_dialog.state["options"] == {"x": 1}

    @pytest.mark.asyncio
    async def test_begin_unknown_dialog_raises(self, dialogs, turn):
        dc = await dialogs.create_context(turn("hi"))
        with pytest.raises(DialogContextError) as exc_info:
            await dc.begin_dialog("missing")
        assert "missing" in str(exc_info.value)
        assert exc_info.value.dialog_context["stack"] == []

    @pytest.mark.asyncio
    async def test_begin_without_id_raises(self, dialogs, turn):
        dc = await dialogs.create_context(turn("hi"))
        with pytest.raises(DialogConfigurationError):
            await dc.begin_dialog("")

    @pytest.mark.asyncio
    async def test_continue_unknown_top_frame_raises_with_snapshot(self, dialogs, turn):
        dc = await dialogs.create_context(turn("hi"))
        dc.stack.insert(0, DialogInstance(id="ghost", state={"step": 1}))

        with pytest.raises(DialogContextError) as exc_info:
            await dc.continue_dialog()
        snapshot = exc_info.value.dialog_context
        assert snapshot["active_dialog"] == "ghost"
        assert snapshot["parent"] is None
        assert snapshot["stack"][0]["id"] == "ghost"

    @pytest.mark.asyncio
    async def test_replace_dialog(self, dialogs, turn):
        first = WaitThenEnd("first")
        dialogs.add(first).add(WaitThenEnd("second"))
        dc = await dialogs.create_context(turn("hi"))
        await dc.begin_dialog("first")

        await dc.replace_dialog("second", "opts")
        assert [f.id for f in dc.stack] == ["second"]
        assert first.ended == [DialogReason.REPLACE_CALLED]

    @pytest.mark.asyncio
    async def test_cancel_all_dialogs(self, dialogs, turn):
        parent = ParentDialog("A", child_id="B")
        child = WaitThenEnd("B")
        dialogs.add(parent).add(child)
        dc = await dialogs.create_context(turn("hi"))
        await dc.begin_dialog("A")

        result = await dc.cancel_all_dialogs()
        assert result.status == DialogTurnStatus.CANCELLED
        assert dc.stack == []
        assert child.ended == [DialogReason.CANCEL_CALLED]
        assert parent.ended == [DialogReason.CANCEL_CALLED]

    @pytest.mark.asyncio
    async def test_cancel_all_on_empty_stack(self, dialogs, turn):
        dc = await dialogs.create_context(turn("hi"))
        result = await dc.cancel_all_dialogs()
        assert result.status == DialogTurnStatus.EMPTY

    @pytest.mark.asyncio
    async def test_prompt_helper_wraps_options(self, dialogs, adapter, turn):
        dialogs.add(TextPrompt("name"))
        dc = await dialogs.create_context(turn("hi"))

        result = await dc.prompt("name", "What is your name?")
        assert result.status == DialogTurnStatus.WAITING
        assert adapter.sent[-1].text == "What is your name?"

    @pytest.mark.asyncio
    async def test_find_dialog_searches_parents(self, turn):
        component = ComponentDialog("outer")
        component.add_dialog(TextPrompt("inner"))
        outer_set = DialogSet().add(component).add(TextPrompt("shared"))

        root = DialogContext.create(outer_set, turn("hi"), DialogState())
        await root.begin_dialog("outer", "Question?")
        child = root.child

        assert child is not None
        assert child.parent.level == root.level
        assert child.find_dialog("inner") is not None
        assert child.find_dialog("shared") is outer_set.find("shared")
        assert root.find_dialog("inner") is None

    def test_end_of_turn_is_immutable(self):
        with pytest.raises(ValidationError):
            Dialog.END_OF_TURN.status = DialogTurnStatus.COMPLETE
        assert Dialog.END_OF_TURN.status == DialogTurnStatus.WAITING


# ──────────────────────────────────────────────────────────────
#  Events
# ──────────────────────────────────────────────────────────────

class HandlesEvents(WaitThenEnd):
    def __init__(self, dialog_id: str, name: str):
        super().__init__(dialog_id)
        self.name = name
        self.seen: list[str] = []

    async def on_pre_bubble_event(self, dc, event):
        self.seen.append(event.name)
        return event.name == self.name


class TestEvents:
    @pytest.mark.asyncio
    async def test_emit_event_reaches_active_dialog(self, dialogs, turn):
        handler = HandlesEvents("h", "custom")
        dialogs.add(handler)
        dc = await dialogs.create_context(turn("hi"))
        await dc.begin_dialog("h")

        assert await dc.emit_event("custom", 1) is True
        assert await dc.emit_event("other") is False
        assert handler.seen == ["custom", "other"]

    @pytest.mark.asyncio
    async def test_reprompt_event_can_be_intercepted(self, dialogs, adapter, turn):
        handler = HandlesEvents("h", DialogEvents.REPROMPT_DIALOG)
        dialogs.add(handler)
        dc = await dialogs.create_context(turn("hi"))
        await dc.begin_dialog("h")

        await dc.reprompt_dialog()
        assert handler.seen == [DialogEvents.REPROMPT_DIALOG]
        assert adapter.sent == []

    @pytest.mark.asyncio
    async def test_event_bubbles_to_container_post_bubble(self, dialogs, turn):
        log: list[str] = []

        class Leaf(WaitThenEnd):
            async def on_pre_bubble_event(self, dc, event):
                log.append("leaf-pre")
                return False

            async def on_post_bubble_event(self, dc, event):
                log.append("leaf-post")
                return False

        class Outer(ComponentDialog):
            async def on_pre_bubble_event(self, dc, event):
                log.append("outer-pre")
                return False

            async def on_post_bubble_event(self, dc, event):
                log.append("outer-post")
                return event.name == "custom"

        outer = Outer("outer")
        outer.add_dialog(Leaf("leaf"))
        dialogs.add(outer)
        dc = await dialogs.create_context(turn("hi"))
        await dc.begin_dialog("outer")

        assert await dc.emit_event("custom", bubble=True, from_leaf=True) is True
        assert log == ["leaf-pre", "outer-pre", "outer-post"]


# ──────────────────────────────────────────────────────────────
#  Waterfall
# ──────────────────────────────────────────────────────────────

class TestWaterfall:
    @pytest.mark.asyncio
    async def test_steps_run_across_turns(self, dialogs, conversation_state, adapter, turn):
        async def ask_name(step):
            step.values["asked"] = True
            return await step.prompt("name", "Name?")

        async def greet(step):
            await step.context.send_activity(f"Hello {step.result}")
            return await step.end_dialog(step.result.upper())

        dialogs.add(WaterfallDialog("main", [ask_name, greet])).add(TextPrompt("name"))

        result = await run_turn(dialogs, conversation_state, turn("hi"), "main")
        assert result.status == DialogTurnStatus.WAITING
        assert [a.text for a in adapter.pop_sent()] == ["Name?"]

        result = await run_turn(dialogs, conversation_state, turn("Ann"), "main")
        assert [a.text for a in adapter.pop_sent()] == ["Hello Ann"]
        assert result.status == DialogTurnStatus.COMPLETE
        assert result.result == "ANN"

    @pytest.mark.asyncio
    async def test_next_skips_to_following_step(self, dialogs, turn):
        async def one(step):
            return await step.next("skipped")

        async def two(step):
            assert step.reason == DialogReason.NEXT_CALLED
            return await step.end_dialog(step.result)

        dialogs.add(WaterfallDialog("wf", [one, two]))
        dc = await dialogs.create_context(turn("hi"))
        result = await dc.begin_dialog("wf")
        assert result.status == DialogTurnStatus.COMPLETE
        assert result.result == "skipped"

    @pytest.mark.asyncio
    async def test_next_twice_raises(self, dialogs, turn):
        async def one(step):
            await step.next()
            return await step.next()

        async def two(step):
            return Dialog.END_OF_TURN

        dialogs.add(WaterfallDialog("wf", [one, two]))
        dc = await dialogs.create_context(turn("hi"))
        with pytest.raises(DialogEngineError):
            await dc.begin_dialog("wf")

    @pytest.mark.asyncio
    async def test_non_message_does_not_advance(self, dialogs, turn):
        async def wait(step):
            return Dialog.END_OF_TURN

        async def done(step):
            return await step.end_dialog("done")

        dialogs.add(WaterfallDialog("wf", [wait, done]))
        context = turn("hi")
        dc = await dialogs.create_context(context)
        await dc.begin_dialog("wf")

        dc.context.activity.type = ActivityTypes.EVENT.value
        result = await dc.continue_dialog()
        assert result.status == DialogTurnStatus.WAITING
        assert dc.active_dialog.state["stepIndex"] == 0


# ──────────────────────────────────────────────────────────────
#  ComponentDialog
# ──────────────────────────────────────────────────────────────

def make_greeting_component(dialog_id: str = "greeting") -> ComponentDialog:
    async def ask(step):
        return await step.prompt("name", "Name?")

    async def finish(step):
        return await step.end_dialog(f"Hello {step.result}")

    component = ComponentDialog(dialog_id)
    component.add_dialog(WaterfallDialog("steps", [ask, finish]))
    component.add_dialog(TextPrompt("name"))
    return component


class VersionTolerantComponent(ComponentDialog):
    async def on_pre_bubble_event(self, dc, event):
        return event.name == DialogEvents.VERSION_CHANGED


class TestComponentDialog:
    @pytest.mark.asyncio
    async def test_inner_stack_persists_between_turns(self, dialogs, conversation_state, adapter, turn):
        dialogs.add(make_greeting_component())

        result = await run_turn(dialogs, conversation_state, turn("hi"), "greeting")
        assert result.status == DialogTurnStatus.WAITING
        assert adapter.pop_sent()[0].text == "Name?"

        result = await run_turn(dialogs, conversation_state, turn("Ann"), "greeting")
        assert result.status == DialogTurnStatus.COMPLETE
        assert result.result == "Hello Ann"

    @pytest.mark.asyncio
    async def test_child_context_exposes_inner_stack(self, dialogs, turn):
        dialogs.add(make_greeting_component())
        dc = await dialogs.create_context(turn("hi"))
        await dc.begin_dialog("greeting")

        child = dc.child
        assert [f.id for f in child.stack] == ["name", "steps"]
        assert child.child is None
        assert dc.child.level == child.level

    @pytest.mark.asyncio
    async def test_cancel_reaches_inner_stack(self, dialogs, turn):
        dialogs.add(make_greeting_component())
        dc = await dialogs.create_context(turn("hi"))
        await dc.begin_dialog("greeting")
        inner = dc.child

        await dc.cancel_all_dialogs()
        assert dc.stack == []
        assert inner.stack == []

    @pytest.mark.asyncio
    async def test_unhandled_version_change_raises(self, dialogs, conversation_state, turn):
        component = make_greeting_component()
        dialogs.add(component)
        await run_turn(dialogs, conversation_state, turn("hi"), "greeting")

        component.add_dialog(TextPrompt("extra"))
        with pytest.raises(DialogContextError, match="Version change detected"):
            await run_turn(dialogs, conversation_state, turn("Ann"), "greeting")

    @pytest.mark.asyncio
    async def test_handled_version_change_continues(self, conversation_state, turn):
        async def ask(step):
            return await step.prompt("name", "Name?")

        async def finish(step):
            return await step.end_dialog(step.result)

        component = VersionTolerantComponent("tolerant")
        component.add_dialog(WaterfallDialog("steps", [ask, finish]))
        component.add_dialog(TextPrompt("name"))
        dialogs = DialogSet(conversation_state.create_property("DialogState")).add(component)

        await run_turn(dialogs, conversation_state, turn("hi"), "tolerant")
        component.add_dialog(TextPrompt("extra"))
        result = await run_turn(dialogs, conversation_state, turn("Ann"), "tolerant")
        assert result.status == DialogTurnStatus.COMPLETE
        assert result.result == "Ann"
