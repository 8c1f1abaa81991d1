"""Shared fakes for the dictation pipeline tests."""

from contextlib import contextmanager

import numpy as np
import pytest

from sonic_dictate.config import DEFAULT_SKILLS
from sonic_dictate.local_model import LocalModelHandle
from sonic_dictate.models import AISkill, HotkeyMode, ProviderConfig, ProviderKind


class FakeAudioEngine:
    """Records start/stop calls and lets tests push chunks."""

    def __init__(self, fail_on_start=False):
        self.start_calls = 0
        self.stop_calls = 0
        self.fail_on_start = fail_on_start
        self.on_samples = None
        self.on_level = None

    def bind(self, on_samples, on_level=None):
        self.on_samples = on_samples
        self.on_level = on_level

    def start(self):
        self.start_calls += 1
        if self.fail_on_start:
            raise RuntimeError("no input device")

    def stop(self):
        self.stop_calls += 1

    def emit(self, *values):
        self.on_samples(np.array(values, dtype=np.float32))


class FakeTranscriber:
    def __init__(self, text="hello world", error=None):
        self.text = text
        self.error = error
        self.calls = []
        self.loaded = False

    def load(self):
        self.loaded = True

    def transcribe(self, buffer):
        self.calls.append(buffer)
        if self.error is not None:
            raise self.error
        return self.text


class FakeInjector:
    def __init__(self):
        self.inserted = []

    def insert_text(self, text):
        self.inserted.append(text)


class FakeProviderClient:
    """Provider client returning canned output and recording its calls."""

    def __init__(self, response="refined", error=None, on_call=None):
        self.response = response
        self.error = error
        self.on_call = on_call
        self.calls = []

    def generate(self, system_prompt, instruction, text):
        self.calls.append((system_prompt, instruction, text))
        if self.on_call is not None:
            self.on_call()
        if self.error is not None:
            raise self.error
        return self.response


class SimulatedHotkeyDriver:
    """In-memory stand-in for the OS hotkey interceptor."""

    def __init__(self):
        self.bindings = {}
        self.unregister_calls = 0

    def register(self, binding, on_down, on_up):
        self.bindings[binding] = (on_down, on_up)

    def unregister(self):
        self.unregister_calls += 1
        self.bindings = {}

    def press(self, binding):
        self.bindings[binding][0]()

    def release(self, binding):
        self.bindings[binding][1]()


class FakeMuter:
    """Records mute and restore calls."""

    def __init__(self):
        self.calls = []

    def mute(self):
        self.calls.append("mute")

    def restore(self):
        self.calls.append("restore")


class FakeSettings:
    """Minimal settings surface with snapshot reads and scoped overrides."""

    def __init__(self, provider=ProviderKind.NONE, credentials=None, vocabulary=None, skills=None):
        self.provider = provider
        self.credentials = dict(credentials or {})
        self.local_model_path = ""
        self._vocabulary = dict(vocabulary or {})
        self._skills = list(skills if skills is not None else DEFAULT_SKILLS)
        self.values = {"auto_refine": False, "history_enabled": True}
        self.mode = HotkeyMode.PUSH_TO_TALK
        self.overrides = []

    def provider_config(self):
        return ProviderConfig(
            provider=self.provider,
            credentials={**self.credentials, **{p: v for p, _, v in self.overrides}},
            local_model_path=self.local_model_path,
        )

    def vocabulary(self):
        return dict(self._vocabulary)

    def skills(self):
        return list(self._skills)

    def hotkey_mode(self):
        return self.mode

    def get(self, key, default=None):
        return self.values.get(key, default)

    @contextmanager
    def override_credential(self, provider, value):
        token = object()
        self.overrides.append((provider, token, value))
        try:
            yield
        finally:
            self.overrides = [entry for entry in self.overrides if entry[1] is not token]


class FakeLlama:
    """Callable mimicking llama_cpp.Llama output."""

    def __init__(self, path, text=" refined text</s>"):
        self.path = path
        self.text = text
        self.closed = False
        self.prompts = []

    def __call__(self, prompt, max_tokens, stop, temperature):
        self.prompts.append(prompt)
        return {"choices": [{"text": self.text}]}

    def close(self):
        self.closed = True


@pytest.fixture
def engine():
    return FakeAudioEngine()


@pytest.fixture
def settings():
    return FakeSettings()


@pytest.fixture
def model_file(tmp_path):
    path = tmp_path / "model.gguf"
    path.write_bytes(b"GGUF")
    return path


@pytest.fixture
def local_handle():
    return LocalModelHandle(loader=FakeLlama)


@pytest.fixture
def translate_skill():
    return AISkill(
        id="translate-en",
        name="Translate to English",
        trigger_phrase="translate",
        prompt_template="Translate to English.",
    )


@pytest.fixture
def fake_llama():
    return FakeLlama


@pytest.fixture
def sync_dispatch():
    """Dispatch that runs worker callables synchronously."""

    def dispatch(work):
        work()

    return dispatch


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def injector():
    return FakeInjector()


@pytest.fixture
def hotkey_driver():
    return SimulatedHotkeyDriver()


@pytest.fixture
def muter():
    return FakeMuter()


@pytest.fixture
def fake_client():
    return FakeProviderClient
