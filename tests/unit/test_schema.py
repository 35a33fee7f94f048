"""Unit tests for the config file schema."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from tada.schema import DEFAULT_DOCKER_SOCK, Action, Config, Container


class TestAction:
    """Tests for the Action model."""

    def test_defaults(self) -> None:
        action = Action(name="ping", command="echo hi")
        assert action.timeout == 300
        assert action.cwd is None
        assert action.script is None

    def test_command_list_becomes_tuple(self) -> None:
        action = Action.model_validate({"name": "ls", "command": ["ls", "-la"]})
        assert action.command == ("ls", "-la")

    def test_both_script_and_command_accepted_at_load(self) -> None:
        """Exclusivity is enforced when the action runs, not when it loads."""
        action = Action(name="x", script="a.sh", command="echo")
        assert action.script == "a.sh"

    def test_non_positive_timeout_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Action(name="x", command="echo", timeout=0)

    def test_frozen(self) -> None:
        action = Action(name="x", command="echo")
        with pytest.raises(ValidationError):
            action.name = "y"  # type: ignore[misc]


class TestContainer:
    """Tests for the Container model."""

    def test_compose_file_alias(self) -> None:
        c = Container.model_validate(
            {"name": "web", "allow": ["update"], "composeFile": "/srv/compose.yml"}
        )
        assert c.compose_file == "/srv/compose.yml"

    def test_compose_service_defaults_to_name(self) -> None:
        assert Container(name="web").compose_service == "web"
        assert Container(name="web", service="frontend").compose_service == "frontend"

    def test_allow_defaults_empty(self) -> None:
        assert Container(name="web").allow == ()


class TestConfig:
    """Tests for the top-level Config model."""

    def test_empty_config(self) -> None:
        config = Config.model_validate({})
        assert config.token is None
        assert config.actions == ()
        assert config.docker is None
        assert config.containers == ()

    def test_docker_sock_default(self) -> None:
        config = Config.model_validate({"docker": {"containers": [{"name": "web"}]}})
        assert config.docker is not None
        assert config.docker.sock == DEFAULT_DOCKER_SOCK
        assert config.containers[0].name == "web"

    def test_unknown_keys_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Config.model_validate({"actions": [{"name": "x", "comand": "echo"}]})

    def test_actions_must_be_list_or_mapping(self) -> None:
        with pytest.raises(ValidationError):
            Config.model_validate({"actions": "deploy"})

    def test_legacy_actions_mapping(self) -> None:
        config = Config.model_validate(
            {"actions": {"deploy": {"script": "deploy.sh", "timeout": 10}}}
        )
        assert len(config.actions) == 1
        assert config.actions[0].name == "deploy"
        assert config.actions[0].script == "deploy.sh"
        assert config.actions[0].timeout == 10

    def test_order_preserved(self) -> None:
        config = Config.model_validate(
            {"actions": [{"name": "b", "command": "x"}, {"name": "a", "command": "y"}]}
        )
        assert [a.name for a in config.actions] == ["b", "a"]
