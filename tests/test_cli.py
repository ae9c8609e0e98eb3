from logging import DEBUG
from logging import INFO
from logging import WARNING
from pathlib import Path
from subprocess import CalledProcessError
from unittest.mock import Mock
from unittest.mock import patch

from pytest import mark
from pytest import raises

from libgetuto import cli
from libgetuto.config import Config


@mark.parametrize(
    "quiet, debug, level",
    [
        (True, False, WARNING),
        (False, False, INFO),
        (True, True, DEBUG),
        (False, True, DEBUG),
    ],
)
def test_log_level(quiet: bool, debug: bool, level: int) -> None:
    assert cli.log_level(Config.from_root(root=Path("/"), quiet=quiet, debug=debug)) == level


@patch("libgetuto.cli.TrustStoreManager")
@patch("libgetuto.cli.geteuid")
def test_main_not_root(geteuid_mock: Mock, manager_mock: Mock, working_dir: Path) -> None:
    geteuid_mock.return_value = 1000
    with patch.dict("os.environ", {"ROOT": str(working_dir)}):
        with raises(SystemExit) as e:
            cli.main([])
    assert e.value.code == 100
    manager_mock.assert_not_called()
    assert list(working_dir.iterdir()) == []


@patch("libgetuto.keyring.kill_daemons")
@patch("libgetuto.keyring.key_generate")
@patch("libgetuto.cli.geteuid")
def test_main_missing_release_keys(
    geteuid_mock: Mock, key_generate_mock: Mock, kill_daemons_mock: Mock, working_dir: Path
) -> None:
    geteuid_mock.return_value = 0
    with patch.dict("os.environ", {"ROOT": str(working_dir)}):
        with raises(SystemExit) as e:
            cli.main(["-v"])
    assert e.value.code == 1
    key_generate_mock.assert_not_called()
    assert not (working_dir / "etc/portage/gnupg/.getuto.last").exists()


@patch("libgetuto.cli.TrustStoreManager")
@patch("libgetuto.cli.geteuid")
def test_main_tool_failure(geteuid_mock: Mock, manager_mock: Mock, working_dir: Path) -> None:
    geteuid_mock.return_value = 0
    manager_mock.return_value.run.side_effect = CalledProcessError(2, ["gpg", "--import"], output=b"no valid data")
    with patch.dict("os.environ", {"ROOT": str(working_dir)}):
        with raises(SystemExit) as e:
            cli.main([])
    assert e.value.code == 2


@patch("libgetuto.cli.TrustStoreManager")
@patch("libgetuto.cli.geteuid")
def test_main(geteuid_mock: Mock, manager_mock: Mock, working_dir: Path) -> None:
    geteuid_mock.return_value = 0
    with patch.dict("os.environ", {"ROOT": str(working_dir), "GETUTO_DEBUG": ""}):
        cli.main(["--verbose"])
    config: Config = manager_mock.call_args.args[0]
    assert config.root == working_dir
    assert config.quiet is False
    assert config.debug is False
    manager_mock.return_value.run.assert_called_once_with()
