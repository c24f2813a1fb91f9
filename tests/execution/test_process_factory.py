"""Tests for descriptor → handle strategies."""

from unittest.mock import MagicMock

import pytest

from batchproc.core.errors import InvalidConfigError, InvalidDescriptorError
from batchproc.execution.factory import (
    CallableProcessFactory,
    DefaultProcessFactory,
    ProcessFactory,
    resolve_factory,
)
from batchproc.execution.handles import SubprocessHandle


class TestDefaultProcessFactory:
    def test_builds_unstarted_handle(self):
        handle = DefaultProcessFactory().create({"id": 1, "command": ["echo", "hi"]})

        assert isinstance(handle, SubprocessHandle)
        assert handle.command == ["echo", "hi"]
        assert handle.started is False

    def test_copies_optional_fields(self, tmp_path):
        handle = DefaultProcessFactory().create({
            "command": "make all",
            "cwd": str(tmp_path),
            "env": {"A": "1"},
            "input": "data",
            "timeout": 5,
        })

        assert handle.cwd == str(tmp_path)
        assert handle.env == {"A": "1"}
        assert handle.input == "data"
        assert handle.timeout == 5

    def test_timeout_defaults_to_sixty_seconds(self):
        handle = DefaultProcessFactory().create({"command": ["true"]})
        assert handle.timeout == 60.0

    def test_configured_default_timeout(self):
        handle = DefaultProcessFactory(default_timeout=2.5).create({"command": ["true"]})
        assert handle.timeout == 2.5

    def test_explicit_none_timeout_falls_back_to_default(self):
        handle = DefaultProcessFactory().create({"command": ["true"], "timeout": None})
        assert handle.timeout == 60.0

    @pytest.mark.parametrize("descriptor", [{}, {"id": "x"}, {"id": "x", "command": None}])
    def test_missing_command(self, descriptor):
        with pytest.raises(InvalidDescriptorError, match="'command'"):
            DefaultProcessFactory().create(descriptor)

    @pytest.mark.parametrize("command", [5, [], "", "   ", ["echo", 1], {"argv": ["echo"]}])
    def test_malformed_command(self, command):
        with pytest.raises(InvalidDescriptorError, match="'command'"):
            DefaultProcessFactory().create({"id": "bad", "command": command})

    def test_tuple_command_accepted(self):
        handle = DefaultProcessFactory().create({"command": ("echo", "hi")})
        assert handle.command == ("echo", "hi")

    @pytest.mark.parametrize("stdin", [5, {"a": 1}, ["x"]])
    def test_non_text_input_rejected(self, stdin):
        with pytest.raises(InvalidDescriptorError, match="'input'"):
            DefaultProcessFactory().create({"command": ["cat"], "input": stdin})

    def test_zero_timeout_disables_timeout(self):
        handle = DefaultProcessFactory().create({"command": ["true"], "timeout": 0})
        assert handle.timeout is None

    @pytest.mark.parametrize("timeout", [-1, "10", True])
    def test_bad_timeout_rejected(self, timeout):
        with pytest.raises(InvalidDescriptorError, match="'timeout'"):
            DefaultProcessFactory().create({"command": ["true"], "timeout": timeout})

    def test_missing_command_is_also_value_error(self):
        with pytest.raises(ValueError):
            DefaultProcessFactory().create({"id": 1})


class TestResolveFactory:
    def test_none_selects_default(self):
        factory = resolve_factory(None, default_timeout=9)

        assert isinstance(factory, DefaultProcessFactory)
        assert factory.default_timeout == 9

    def test_callable_is_wrapped(self):
        handle = MagicMock()
        creator = MagicMock(spec=lambda descriptor: None, return_value=handle)

        factory = resolve_factory(creator)

        assert isinstance(factory, CallableProcessFactory)
        assert factory.create({"id": 1}) is handle
        creator.assert_called_once_with({"id": 1})

    def test_factory_object_used_as_is(self):
        class Custom:
            def create(self, descriptor):
                return descriptor

        custom = Custom()
        assert isinstance(custom, ProcessFactory)
        assert resolve_factory(custom) is custom

    @pytest.mark.parametrize("override", [42, "factory", [1, 2]])
    def test_rejects_other_values(self, override):
        with pytest.raises(InvalidConfigError) as exc_info:
            resolve_factory(override)
        assert exc_info.value.key == "process_factory"
