import pytest

from tcpgate.cli import build_parser, main, version_text


def test_parser_defaults():
    args = build_parser().parse_args([])
    assert args.config == "config/config.yaml"
    assert args.version is False


def test_parser_config_option():
    args = build_parser().parse_args(["--config", "other.yaml"])
    assert args.config == "other.yaml"


@pytest.mark.parametrize("flag", ["--version", "-V"])
def test_parser_version_flags(flag):
    assert build_parser().parse_args([flag]).version is True


def test_parser_rejects_unknown_option():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--bogus"])


def test_version_text_lines():
    lines = version_text().splitlines()
    assert len(lines) == 4
    assert "Git Commit: unknown" in lines
    assert lines[0].startswith("Version:")


@pytest.mark.parametrize("flag", ["--version", "-V"])
def test_main_prints_version(flag, capsys):
    assert main([flag]) == 0
    assert capsys.readouterr().out.strip() == version_text()