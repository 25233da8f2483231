import pytest

from n2kserver import N2KConfigurationError, ServerConfig, WireFormat, load_config


def test_defaults():
    config = ServerConfig()
    assert config.port == 3001
    assert config.format == WireFormat.ACTISENSE_N2K_ASCII
    assert config.suppress_echo is False
    assert config.max_line_length is None


def test_format_string_is_normalised():
    config = ServerConfig(format="candump2")
    assert config.format is WireFormat.CANDUMP2


@pytest.mark.parametrize("port", [-1, 65536, "3001", True])
def test_invalid_port(port):
    with pytest.raises(N2KConfigurationError):
        ServerConfig(port=port)


def test_invalid_format():
    with pytest.raises(N2KConfigurationError):
        ServerConfig(format="nmea0183")


def test_invalid_max_line_length():
    with pytest.raises(N2KConfigurationError):
        ServerConfig(max_line_length=0)


def test_unknown_field_is_rejected():
    with pytest.raises(N2KConfigurationError):
        ServerConfig.from_dict({"port": 3001, "fromat": "ydraw"})


def test_load_config(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "n2kserver:\n"
        "  port: 10110\n"
        "  format: ydraw\n"
        "upstream:\n"
        "  host: 192.168.1.50\n"
        "  port: 1457\n"
    )
    config = load_config(str(path))
    assert config["n2kserver"] == ServerConfig(port=10110, format=WireFormat.YDRAW)
    assert config["upstream"] == {"host": "192.168.1.50", "port": 1457}


def test_load_config_without_server_section(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("logging:\n  level: DEBUG\n")
    assert load_config(str(path))["n2kserver"] == ServerConfig()


def test_load_config_bad_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("n2kserver: [unclosed\n")
    with pytest.raises(N2KConfigurationError):
        load_config(str(path))


def test_load_config_missing_file(tmp_path):
    with pytest.raises(N2KConfigurationError):
        load_config(str(tmp_path / "missing.yaml"))


def test_schema_lists_every_format():
    schema = ServerConfig.schema()
    assert schema["properties"]["port"]["default"] == 3001
    assert set(schema["properties"]["format"]["enum"]) == set(WireFormat.values())
