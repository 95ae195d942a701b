from dataclasses import replace
from types import SimpleNamespace

import pytest

from conftest import FakeBackend, FakeSpeech, make_gpt
from nexus_core.config import AppConfig
from nexus_core.controller import (
    NO_BACKEND_MESSAGE,
    NO_GPT_MESSAGE,
    NOT_CONFIGURED_MESSAGE,
    AssistantSessionController,
    build_storage,
)
from nexus_core.errors import InputRejectedError, InvalidConfigurationError
from nexus_core.models import AskConfig, AskResult, Role, Visibility, Voice
from nexus_core.persistence.session_store import (
    CHAT_STORAGE_KEY,
    GPT_STORAGE_KEY,
    JsonFileStorage,
    PersistenceAdapter,
)
from nexus_core.persistence.streamlit_storage import StreamlitSessionStorage
from nexus_core.services.voice import VoiceInput


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def controller(backend, persistence, clock):
    ctl = AssistantSessionController(backend, persistence=persistence, clock=clock)
    ctl.startup()
    return ctl


def configure(controller, gpt_id="nexus-ai-001", backend_id="asst_123"):
    controller.update_gpt(replace(controller.gpts.get(gpt_id), backend_id=backend_id))


def contents(controller):
    return [(m.role, m.content) for m in controller.chats.messages]


def test_startup_seeds_gpts_and_points_at_default(controller):
    assert len(controller.gpts) == 10
    assert controller.gpts.active_gpt.id == "nexus-ai-001"
    assert len(controller.assistants()) == 10


def test_send_message_round_trip(controller, backend):
    configure(controller)

    reply = controller.send_message("  hola  ")

    assert reply.content == "pong"
    assert contents(controller) == [(Role.USER, "  hola  "), (Role.ASSISTANT, "pong")]
    assert backend.calls == [("hola", AskConfig("asst_123", "gpt-4"))]
    assert controller.chats.is_loading is False
    assert controller.pending_requests == []


def test_unconfigured_gpt_answers_with_setup_hint(controller, backend):
    reply = controller.send_message("hello")
    assert reply.content == NOT_CONFIGURED_MESSAGE
    assert backend.calls == []


def test_missing_gpt_answers_with_selection_hint(backend, clock):
    controller = AssistantSessionController(backend, clock=clock)
    reply = controller.send_message("hello")
    assert reply.content == NO_GPT_MESSAGE
    assert contents(controller)[0] == (Role.USER, "hello")


def test_backend_error_is_shown_as_reply(persistence, clock):
    failing = FakeBackend("Error processing your message: rate limited", error="rate limited")
    controller = AssistantSessionController(failing, persistence=persistence, clock=clock)
    controller.startup()
    configure(controller)

    reply = controller.send_message("hi")
    assert reply.content == "Error processing your message: rate limited"
    assert controller.chats.is_loading is False


def test_rejected_input_leaves_no_trace(controller):
    with pytest.raises(InputRejectedError):
        controller.send_message("   ")
    assert controller.chats.chats == []
    assert controller.pending_requests == []


def test_backend_exception_releases_loading(controller, backend):
    configure(controller)

    def boom(prompt, config):
        raise RuntimeError("network down")

    backend.ask = boom
    with pytest.raises(RuntimeError):
        controller.send_message("hi")
    assert controller.chats.is_loading is False
    assert controller.pending_requests == []


def test_late_answer_goes_to_the_chat_that_asked(controller):
    controller.chats.add_message("question", Role.USER, "nexus-ai-001")
    asking_chat = controller.chats.active_chat.id
    pending = controller.begin_request()
    assert controller.chats.is_loading

    controller.select_assistant("professor-sloth-001")
    message = controller.complete_request(pending, AskResult("late answer"))

    assert message.assistant_id == "nexus-ai-001"
    assert controller.chats.get_chat(asking_chat).messages[-1].content == "late answer"
    assert controller.chats.messages == []
    assert controller.chats.is_loading is False


def test_answer_for_deleted_chat_is_dropped(controller):
    controller.chats.add_message("question", Role.USER, "nexus-ai-001")
    pending = controller.begin_request()
    controller.delete_chat(pending.chat_id)

    assert controller.complete_request(pending, AskResult("nobody listens")) is None
    assert controller.chats.is_loading is False


def test_cancelled_and_repeated_tokens_are_dropped(controller):
    controller.new_chat()
    pending = controller.begin_request()

    assert controller.cancel_request(pending.token)
    assert controller.chats.is_loading is False
    assert controller.complete_request(pending, AskResult("too late")) is None
    assert controller.chats.messages == []
    assert controller.cancel_request(pending.token) is False


def test_loading_stays_up_while_any_request_is_in_flight(controller):
    controller.new_chat()
    first = controller.begin_request()
    second = controller.begin_request()

    controller.complete_request(first, AskResult("one"))
    assert controller.chats.is_loading is True
    controller.complete_request(second, AskResult("two"))
    assert controller.chats.is_loading is False
    assert [m.content for m in controller.chats.messages] == ["one", "two"]


def test_mutations_are_persisted(controller, storage, backend, clock):
    configure(controller)
    controller.send_message("remember me")
    assert storage.get(CHAT_STORAGE_KEY) is not None

    reopened = AssistantSessionController(
        backend, persistence=PersistenceAdapter(storage), clock=clock
    )
    reopened.startup()

    assert [m.content for m in reopened.chats.messages] == ["remember me", "pong"]
    assert reopened.gpts.get("nexus-ai-001").backend_id == "asst_123"
    assert len(reopened.gpts) == 10


def test_select_assistant_syncs_gpt_pointer(controller):
    assert controller.select_assistant("bolt-new-001")
    assert controller.gpts.active_gpt.id == "bolt-new-001"
    assert controller.chats.active_chat.assistant_id == "bolt-new-001"
    assert controller.select_assistant("ghost") is False
    assert controller.gpts.active_gpt.id == "bolt-new-001"


def test_open_chat_syncs_gpt_pointer(controller):
    controller.select_assistant("bolt-new-001")
    bolt_chat = controller.chats.active_chat.id
    controller.select_assistant("amara-divi-001")

    assert controller.open_chat(bolt_chat)
    assert controller.gpts.active_gpt.id == "bolt-new-001"
    assert controller.open_chat("missing") is False


def test_deep_links(backend, clock):
    controller = AssistantSessionController(backend, clock=clock)
    controller.startup()
    controller.add_gpt(make_gpt("secret", visibility=Visibility.PRIVATE))
    controller.add_gpt(make_gpt("wip", visibility=Visibility.DRAFT))
    controller.add_gpt(make_gpt("open"))

    assert controller.open_deep_link("axel-eleven-001")
    assert controller.open_deep_link("open")
    assert controller.chats.active_assistant.id == "open"
    assert controller.open_deep_link("secret") is False
    assert controller.open_deep_link("wip") is False
    assert controller.open_deep_link("ghost") is False
    assert controller.open_deep_link(None) is False

    admin = AssistantSessionController(
        backend, gpt_store=controller.gpts, config=AppConfig(privileged=True), clock=clock
    )
    assert admin.open_deep_link("secret")
    assert admin.open_deep_link("wip") is False


def test_custom_gpts_in_listings(controller):
    controller.add_gpt(make_gpt("travel-buddy", role="Travel Planner"))
    controller.add_gpt(make_gpt("hidden", visibility=Visibility.DRAFT))

    ids = [a.id for a in controller.assistants()]
    assert ids[-1] == "travel-buddy"
    assert len(ids) == 11

    controller.toggle_pin("travel-buddy")
    assert [a.id for a in controller.pinned_assistants()] == ["travel-buddy"]
    assert "travel-buddy" not in {a.id for a in controller.browsable_assistants()}
    assert [a.id for a in controller.browsable_assistants("tourism")] == ["professor-sloth-001"]


def test_builtin_ids_are_reserved(controller):
    with pytest.raises(InvalidConfigurationError):
        controller.add_gpt(make_gpt("nexus-ai-001"))


def test_gpt_administration(controller):
    controller.add_gpt(make_gpt("mine"))
    assert controller.set_default_gpt("mine")
    assert controller.gpts.get_default().id == "mine"
    assert controller.delete_gpt("mine")
    assert len([g for g in controller.gpts.gpts if g.is_default]) == 1


def test_chat_groups_and_search(controller, clock):
    configure(controller)
    controller.send_message("first")
    clock.advance(days=2)
    controller.select_assistant("salomon-lawyer-001")
    controller.send_message("contract question")

    groups = controller.chat_groups()
    assert [c.assistant_id for c in groups.today] == ["salomon-lawyer-001"]
    assert [c.assistant_id for c in groups.last_week] == ["nexus-ai-001"]
    assert [c.assistant_id for c in controller.visible_chats("tico")] == ["salomon-lawyer-001"]


def test_chat_housekeeping(controller):
    configure(controller)
    controller.send_message("hi")
    chat_id = controller.chats.active_chat.id
    reply_id = controller.chats.messages[-1].id

    assert controller.rename_chat(chat_id, "  Greetings ")
    assert controller.chats.get_chat(chat_id).title == "Greetings"
    assert controller.rename_chat(chat_id, "   ") is False
    assert controller.edit_message(reply_id, "pong!")
    assert controller.give_feedback(reply_id, True)
    assert controller.archive_chat(chat_id)
    assert controller.visible_chats() == []


def test_rating(controller):
    before = controller.catalog.get("amara-divi-001").stats
    updated = controller.rate_assistant("amara-divi-001", 3)
    assert updated.stats.users == before.users + 1
    assert updated.stats.ratings.three == before.ratings.three + 1
    assert controller.chats.active_assistant.id == "nexus-ai-001"
    assert controller.rate_assistant("ghost", 3) is None


def test_voice_settings_follow_active_assistant(controller):
    assert controller.voice_settings().voice is Voice.ALLOY
    controller.select_assistant("amara-divi-001")
    assert controller.voice_settings().voice is Voice.NOVA

    controller.set_assistant_voice("amara-divi-001", Voice.FABLE)
    controller.set_voice_preferences(speed=3.0, volume=0.5)
    settings = controller.voice_settings()
    assert settings.voice is Voice.FABLE
    assert settings.speed == 2.0
    assert settings.volume == 0.5


def test_custom_gpt_speaks_with_default_voice(controller):
    controller.add_gpt(make_gpt("mine"))
    controller.select_assistant("mine")
    assert controller.voice_settings().voice is Voice.ALLOY


def test_speak(backend, clock):
    speech = FakeSpeech()
    controller = AssistantSessionController(backend, speech=speech, clock=clock)

    assert controller.speak("hola") == b"mp3:hola"
    assert speech.calls[0][1].voice is Voice.ALLOY
    assert controller.speak("  ") == b""
    assert AssistantSessionController(backend).speak("hola") == b""


def test_voice_transcripts_become_messages(controller):
    configure(controller)

    class Transcriber:
        def transcribe(self, audio):
            return "spoken words"

    VoiceInput(Transcriber(), controller.on_transcript).submit(b"wav")
    assert contents(controller) == [(Role.USER, "spoken words"), (Role.ASSISTANT, "pong")]


def test_sidebar_toggle(controller):
    assert controller.toggle_sidebar() is False
    assert controller.chats.is_sidebar_open is False


def test_from_config_wires_openai_services(tmp_path):
    config = AppConfig(openai_api_key="sk-test", storage_dir=tmp_path)
    controller = AssistantSessionController.from_config(config)

    assert controller.is_ready()
    assert controller.voice is not None
    assert len(controller.gpts) == 10
    assert (tmp_path / "gpt-storage.json").exists()


def test_without_api_key_the_chat_reports_the_missing_backend(tmp_path, caplog):
    controller = AssistantSessionController.from_config(AppConfig(storage_dir=tmp_path))

    assert "OPENAI_API_KEY" in caplog.text
    assert not controller.is_ready()
    assert controller.voice is None
    assert controller.speak("hola") == b""

    configure(controller)
    reply = controller.send_message("anyone there?")
    assert reply.content == NO_BACKEND_MESSAGE
    assert controller.chats.is_loading is False


def test_storage_selection(tmp_path, monkeypatch):
    state = {}
    monkeypatch.setattr(
        "nexus_core.persistence.streamlit_storage.st", SimpleNamespace(session_state=state)
    )

    assert isinstance(build_storage(AppConfig(storage_dir=tmp_path)), JsonFileStorage)

    config = AppConfig(openai_api_key="sk-test", storage="streamlit", storage_dir=tmp_path)
    assert isinstance(build_storage(config), StreamlitSessionStorage)

    controller = AssistantSessionController.from_config(config)
    controller.toggle_pin("bolt-new-001")

    assert "nexus:" + GPT_STORAGE_KEY in state
    assert '"bolt-new-001"' in state["nexus:" + CHAT_STORAGE_KEY]
    assert list(tmp_path.iterdir()) == []


def test_new_chat_moves_both_pointers(controller, backend):
    configure(controller, "nexus-ai-001", "asst_nexus")
    configure(controller, "bolt-new-001", "asst_bolt")

    chat = controller.new_chat("bolt-new-001")
    controller.send_message("hello bolt")

    assert chat.assistant_id == "bolt-new-001"
    assert controller.chats.active_chat.id == chat.id
    assert [m.assistant_id for m in controller.chats.messages] == ["bolt-new-001"] * 2
    assert backend.calls[-1][1] == AskConfig("asst_bolt", "gpt-4")


def test_new_chat_defaults_to_active_assistant(controller):
    controller.select_assistant("amara-divi-001")
    chat = controller.new_chat()
    assert chat.assistant_id == "amara-divi-001"
    assert controller.gpts.active_gpt.id == "amara-divi-001"


def test_new_chat_for_unknown_assistant(controller):
    before = controller.chats.chats
    assert controller.new_chat("ghost") is None
    assert controller.chats.chats == before
    assert controller.chats.active_assistant.id == "nexus-ai-001"
