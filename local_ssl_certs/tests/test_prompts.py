"""Tests for the interactive prompts."""

import io
from collections.abc import Iterator

import pytest

from local_ssl_certs.lib import prompts


def _answers(*values: str) -> Iterator[str]:
    return iter(values)


class FakeTty(io.StringIO):
    """stdin stand-in that claims to be a terminal."""

    def isatty(self) -> bool:
        return True


class TestConfirm:
    """Tests for confirm()."""

    @pytest.mark.parametrize(
        ("answer", "default_yes", "expected"),
        [
            ("", False, False),
            ("", True, True),
            ("y", False, True),
            ("YES", False, True),
            ("n", True, False),
            ("sure", True, False),
        ],
    )
    def test_answers(
        self, monkeypatch: pytest.MonkeyPatch, answer: str, default_yes: bool, expected: bool
    ) -> None:
        """Empty takes the default; only y/yes mean yes."""
        monkeypatch.setattr("builtins.input", lambda prompt: answer)

        assert prompts.confirm("Overwrite existing files?", default_yes) is expected

    def test_suffix_shows_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The prompt suffix capitalizes the default answer."""
        seen: list[str] = []
        monkeypatch.setattr("builtins.input", lambda prompt: seen.append(prompt) or "")

        prompts.confirm("Create one now?", True)
        prompts.confirm("Overwrite existing files?")

        assert seen == ["Create one now? (Y/n) ", "Overwrite existing files? (y/N) "]

    def test_eof_declines(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Closed stdin counts as no."""

        def closed(prompt: str) -> str:
            raise EOFError

        monkeypatch.setattr("builtins.input", closed)

        assert prompts.confirm("Create one now?", True) is False


class TestPromptPassword:
    """Tests for prompt_password()."""

    def test_reprompts_until_match(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Mismatched entries start over; the matching pair wins."""
        answers = _answers("one", "two", "three", "three")
        monkeypatch.setattr(prompts.sys, "stdin", FakeTty())
        monkeypatch.setattr(prompts.getpass, "getpass", lambda prompt: next(answers))

        assert prompts.prompt_password("Password: ", "Confirm password: ") == "three"

    def test_single_entry_without_confirmation(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without a confirm prompt the first entry is returned."""
        monkeypatch.setattr(prompts.sys, "stdin", FakeTty())
        monkeypatch.setattr(prompts.getpass, "getpass", lambda prompt: "pw")

        assert prompts.prompt_password("Enter password: ") == "pw"

    def test_reads_line_when_not_a_terminal(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Piped stdin supplies the password without confirmation."""
        monkeypatch.setattr(prompts.sys, "stdin", io.StringIO("piped secret\nignored\n"))

        assert prompts.prompt_password("Password: ", "Confirm password: ") == "piped secret"

    def test_closed_stdin(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Closed stdin before any input is an error."""
        monkeypatch.setattr(prompts.sys, "stdin", io.StringIO(""))

        with pytest.raises(EOFError):
            prompts.prompt_password("Password: ")
