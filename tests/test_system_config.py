from shared.config.system import load_system_config


def test_empty_config_uses_defaults():
    config = load_system_config({})

    assert config.resolver.active_window_seconds == 900
    assert config.resolver.rss_grace_seconds == 120
    assert config.resolver.offline_confirm_polls == 3
    assert config.resolver.active_probe_depths == (3, 1)
    assert config.resolver.dormant_probe_depth == 1
    assert config.youtube.batch_size == 50
    assert config.cache.fast_ttl_seconds < config.cache.normal_ttl_seconds
    assert config.hashtag.enabled is False
    assert config.state_dir is None


def test_invalid_fields_fall_back_individually():
    config = load_system_config(
        {
            "resolver": {
                "offline_confirm_polls": "three",
                "rss_grace_seconds": 30,
                "active_probe_depths": [3, 0],
                "probe_concurrency": 0,
            },
            "cache": {"fast_ttl_seconds": 900, "normal_ttl_seconds": 600},
            "api": "not an object",
        }
    )

    assert config.resolver.offline_confirm_polls == 3
    assert config.resolver.rss_grace_seconds == 30
    assert config.resolver.active_probe_depths == (3, 1)
    assert config.resolver.probe_concurrency == 4
    assert config.cache.fast_ttl_seconds == 60
    assert config.cache.normal_ttl_seconds == 600
    assert config.api.port == 8210


def test_batch_size_clamped_to_api_limit():
    assert load_system_config({"youtube": {"batch_size": 500}}).youtube.batch_size == 50
    assert load_system_config({"youtube": {"batch_size": 10}}).youtube.batch_size == 10


def test_hashtag_enabled_only_with_tag():
    assert load_system_config({"hashtag": {"enabled": True}}).hashtag.enabled is False

    config = load_system_config({"hashtag": {"hashtag": "#imeroleplay", "max_results": 80}})

    assert config.hashtag.enabled is True
    assert config.hashtag.hashtag == "imeroleplay"
    assert config.hashtag.max_results == 50


def test_roster_and_state_dir():
    config = load_system_config(
        {"state_dir": "/tmp/multiview", "roster": {"default_groups": ["A4A", "NMC"], "config_key": "roster"}}
    )

    assert config.state_dir == "/tmp/multiview"
    assert config.roster.default_groups == ["A4A", "NMC"]
    assert config.roster.config_key == "roster"
    assert config.roster.state_key == "channels:state"
