"""End-to-end tests: DialogEngine driven through the loopback adapter."""
import pytest

from core.engine import DIALOG_STATE_PROPERTY, DialogEngine
from dialogs import ComponentDialog, Dialog, WaterfallDialog
from models.schemas import DialogTurnStatus
from prompts import ConfirmPrompt, TextPrompt


class BookingDialog(ComponentDialog):
    def __init__(self):
        super().__init__("booking")
        self.add_dialog(WaterfallDialog("main", [self.ask_name, self.confirm, self.finish]))
        self.add_dialog(TextPrompt("name"))
        self.add_dialog(ConfirmPrompt("confirm", default_locale="en-us"))
        self.initial_dialog_id = "main"

    async def ask_name(self, step):
        return await step.prompt("name", "What is your name?")

    async def confirm(self, step):
        step.values["name"] = step.result
        return await step.prompt("confirm", f"Book for {step.result}?")

    async def finish(self, step):
        if not step.result:
            await step.context.send_activity("Cancelled.")
            return await step.end_dialog()
        await step.context.send_activity(f"Booked for {step.values['name']}.")
        return await step.end_dialog(step.values["name"])


class Broken(Dialog):
    async def begin_dialog(self, dc, options=None):
        raise RuntimeError("boom")


@pytest.fixture
def engine(conversation_state, user_state) -> DialogEngine:
    return DialogEngine(BookingDialog(), conversation_state, user_state)


@pytest.fixture
def chat(adapter, engine):
    results = []

    async def logic(context):
        results.append(await engine.run_turn(context))

    async def _say(text: str):
        await adapter.send_text(text, logic)
        return results[-1], [a.text for a in adapter.pop_sent()]
    return _say


class TestDialogEngine:
    def test_requires_root_dialog(self, conversation_state):
        with pytest.raises(ValueError):
            DialogEngine(None, conversation_state)

    def test_requires_conversation_state(self):
        with pytest.raises(ValueError):
            DialogEngine(BookingDialog(), None)

    @pytest.mark.asyncio
    async def test_full_conversation(self, chat):
        result, sent = await chat("hi")
        assert result.status == DialogTurnStatus.WAITING
        assert sent == ["What is your name?"]

        result, sent = await chat("Ann")
        assert result.status == DialogTurnStatus.WAITING
        assert sent == ["Book for Ann? (1) Yes or (2) No"]

        result, sent = await chat("yes")
        assert result.status == DialogTurnStatus.COMPLETE
        assert result.result == "Ann"
        assert sent == ["Booked for Ann."]

    @pytest.mark.asyncio
    async def test_root_restarts_after_completion(self, chat):
        await chat("hi")
        await chat("Ann")
        await chat("no")

        result, sent = await chat("again")
        assert result.status == DialogTurnStatus.WAITING
        assert sent == ["What is your name?"]

    @pytest.mark.asyncio
    async def test_stack_persisted_between_turns(self, chat, storage):
        await chat("hi")
        record = (await storage.read(["test/conversations/convo1"]))["test/conversations/convo1"]

        stack = record[DIALOG_STATE_PROPERTY]["dialogStack"]
        assert [frame["id"] for frame in stack] == ["booking"]
        inner = stack[0]["state"]["dialogs"]["dialogStack"]
        assert [frame["id"] for frame in inner] == ["name", "main"]

    @pytest.mark.asyncio
    async def test_state_survives_new_engine(self, chat, adapter, conversation_state, user_state):
        await chat("hi")

        fresh = DialogEngine(BookingDialog(), conversation_state, user_state)
        results = []

        async def logic(context):
            results.append(await fresh.run_turn(context))

        await adapter.send_text("Bob", logic)
        assert results[-1].status == DialogTurnStatus.WAITING
        assert adapter.pop_sent()[-1].text == "Book for Bob? (1) Yes or (2) No"

    @pytest.mark.asyncio
    async def test_errors_propagate_without_saving(self, conversation_state, adapter, storage):
        engine = DialogEngine(Broken("broken"), conversation_state)
        with pytest.raises(RuntimeError):
            await adapter.send_text("hi", engine.run_turn)
        assert len(storage) == 0
