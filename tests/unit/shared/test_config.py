"""
Tests for settings loading and flat option names.
"""

from faithqa.shared.config import FaithQASettings


def test_defaults(tmp_path):
    settings = FaithQASettings.load_from_yaml(tmp_path / "missing.yaml")

    assert settings.pipeline.max_response_time_ms == 3000
    assert settings.pipeline.concurrent_requests == 5
    assert settings.cache.ttl_ms == 300_000
    assert settings.cache.capacity == 100
    assert settings.alignment.accuracy_threshold == 0.90
    assert settings.privacy.retain_conversation_data is False
    assert settings.privacy.conversation_retention_days == 30
    assert settings.supported_languages == ["en", "am", "ti", "om"]


def test_flat_keys_map_to_sections(tmp_path):
    config_path = tmp_path / "faithqa.yaml"
    config_path.write_text(
        "faithqa:\n"
        "  max_response_time_ms: 1500\n"
        "  cache_ttl_ms: 1000\n"
        "  concurrent_requests: 2\n"
        "  retain_conversation_data: true\n"
        "  chat_model_candidates: [model-x, model-y]\n"
        "  pipeline:\n"
        "    queue_capacity: 4\n",
        encoding="utf-8",
    )

    settings = FaithQASettings.load_from_yaml(config_path)

    assert settings.pipeline.max_response_time_ms == 1500
    assert settings.pipeline.concurrent_requests == 2
    assert settings.pipeline.queue_capacity == 4
    assert settings.cache.ttl_ms == 1000
    assert settings.privacy.retain_conversation_data is True
    assert settings.llm.chat_model_candidates == ["model-x", "model-y"]


def test_section_value_wins_over_flat_key(tmp_path):
    config_path = tmp_path / "faithqa.yaml"
    config_path.write_text(
        "faithqa:\n"
        "  cache_capacity: 10\n"
        "  cache:\n"
        "    capacity: 20\n",
        encoding="utf-8",
    )

    assert FaithQASettings.load_from_yaml(config_path).cache.capacity == 20
