import pytest
from voiceorder.config import REQUIRED_VARS, Settings, load_settings, update_voice_settings, validate_config
from voiceorder.errors import ConfigError
from voiceorder.states import Language


class TestValidateConfig:
    def test_exits_on_missing_required(self, monkeypatch, capsys):
        for var in REQUIRED_VARS:
            monkeypatch.delenv(var, raising=False)
        with pytest.raises(SystemExit) as exc_info:
            validate_config()
        assert exc_info.value.code == 1
        assert "ORDER_SERVICE_URL" in capsys.readouterr().err

    def test_passes_with_required_set(self, monkeypatch):
        monkeypatch.setenv("ORDER_SERVICE_URL", "https://orders.example.com")
        validate_config()

    def test_warns_on_missing_optional(self, monkeypatch, caplog):
        monkeypatch.setenv("ORDER_SERVICE_URL", "https://orders.example.com")
        monkeypatch.delenv("NOTIFY_URL", raising=False)
        with caplog.at_level("WARNING"):
            validate_config()
        assert "NOTIFY_URL" in caplog.text


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings({})
        assert settings == Settings()
        assert settings.max_retries == 3
        assert settings.auto_answer_calls is True
        assert settings.default_language == Language.ENGLISH

    def test_reads_environment(self):
        settings = load_settings({
            "MAX_RETRIES": "5",
            "AUTO_ANSWER_CALLS": "false",
            "DEFAULT_LANGUAGE": "Telugu",
            "AUTO_DETECT_LANGUAGE": "0",
            "ASR_CONFIDENCE_FLOOR": "0.6",
            "ORDER_SERVICE_URL": "https://orders.example.com",
        })
        assert settings.max_retries == 5
        assert settings.auto_answer_calls is False
        assert settings.default_language == Language.TELUGU
        assert settings.auto_detect_language is False
        assert settings.asr_confidence_floor == 0.6
        assert settings.order_service_url == "https://orders.example.com"

    def test_bad_boolean(self):
        with pytest.raises(ConfigError, match="AUTO_ANSWER_CALLS"):
            load_settings({"AUTO_ANSWER_CALLS": "maybe"})

    def test_bad_number(self):
        with pytest.raises(ConfigError, match="MAX_RETRIES"):
            load_settings({"MAX_RETRIES": "three"})

    def test_negative_retries(self):
        with pytest.raises(ConfigError):
            load_settings({"MAX_RETRIES": "-1"})

    def test_unknown_language(self):
        with pytest.raises(ConfigError):
            load_settings({"DEFAULT_LANGUAGE": "french"})

    def test_public_dict_hides_secrets(self):
        public = Settings(webhook_secret="s3cret", order_service_api_key="k").public_dict()
        assert "s3cret" not in public.values()
        assert "k" not in public.values()
        assert public["default_language"] == "english"


class TestUpdateVoiceSettings:
    def test_applies_recognized_options(self):
        updated = update_voice_settings(Settings(), {
            "max_retries": 5,
            "auto_answer_calls": False,
            "default_language": "Spanish",
            "auto_detect_language": False,
        })
        assert updated.max_retries == 5
        assert updated.auto_answer_calls is False
        assert updated.default_language == Language.SPANISH
        assert updated.auto_detect_language is False

    def test_leaves_other_settings_alone(self):
        original = Settings(webhook_secret="s3cret")
        updated = update_voice_settings(original, {"max_retries": 1})
        assert updated.webhook_secret == "s3cret"
        assert original.max_retries == 3

    def test_unknown_key(self):
        with pytest.raises(ConfigError, match="webhook_secret"):
            update_voice_settings(Settings(), {"webhook_secret": "x"})

    def test_bad_values(self):
        with pytest.raises(ConfigError, match="max_retries"):
            update_voice_settings(Settings(), {"max_retries": "three"})
        with pytest.raises(ConfigError, match="auto_answer_calls"):
            update_voice_settings(Settings(), {"auto_answer_calls": "maybe"})
        with pytest.raises(ConfigError):
            update_voice_settings(Settings(), {"default_language": "french"})

    def test_boolean_is_not_a_retry_count(self):
        with pytest.raises(ConfigError):
            update_voice_settings(Settings(), {"max_retries": True})

    def test_negative_retries(self):
        with pytest.raises(ConfigError):
            update_voice_settings(Settings(), {"max_retries": -1})
