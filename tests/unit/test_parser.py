"""Tests for the command parser."""

import pytest

from agentgate.security.parser import (
    ParseResult,
    extract_domains,
    extract_paths,
    hash_command,
    looks_like_path,
    parse_command,
)


class TestParseCommand:
    """Tests for parse_command."""

    def test_simple_command(self) -> None:
        """Should split on whitespace."""
        result = parse_command("ls -la /tmp")
        assert result.success is True
        assert result.argv == ("ls", "-la", "/tmp")
        assert result.error is None
        assert result.base_command == "ls"

    def test_collapses_repeated_whitespace(self) -> None:
        """Should ignore runs of whitespace and tabs."""
        result = parse_command("  git \t status   ")
        assert result.argv == ("git", "status")

    def test_double_quotes(self) -> None:
        """Double-quoted text should stay one token."""
        result = parse_command('git commit -m "fix the bug"')
        assert result.argv == ("git", "commit", "-m", "fix the bug")

    def test_single_quotes_are_literal(self) -> None:
        """Backslashes inside single quotes are kept."""
        result = parse_command(r"echo 'a\nb'")
        assert result.argv == ("echo", r"a\nb")

    def test_backslash_escapes_space(self) -> None:
        """Backslash outside single quotes escapes the next character."""
        result = parse_command(r"cat my\ file.txt")
        assert result.argv == ("cat", "my file.txt")

    def test_escaped_quote_inside_double_quotes(self) -> None:
        """An escaped double quote does not close the string."""
        result = parse_command(r'echo "say \"hi\""')
        assert result.argv == ("echo", 'say "hi"')

    def test_adjacent_quotes_join(self) -> None:
        """Quoted and unquoted parts of one word are joined."""
        result = parse_command("echo foo'bar'\"baz\"")
        assert result.argv == ("echo", "foobarbaz")

    def test_empty_quotes_produce_no_token(self) -> None:
        """An empty quoted string alone does not produce a token."""
        result = parse_command('echo ""')
        assert result.argv == ("echo",)

    def test_dangling_backslash_kept(self) -> None:
        """A trailing backslash is kept literally."""
        result = parse_command("echo foo\\")
        assert result.argv == ("echo", "foo\\")

    def test_unclosed_double_quote(self) -> None:
        """Should fail on an unterminated double quote."""
        result = parse_command('echo "hello')
        assert result.success is False
        assert result.error == "Unclosed double quote"
        assert result.argv == ()

    def test_unclosed_single_quote(self) -> None:
        """Should fail on an unterminated single quote."""
        result = parse_command("echo 'hello")
        assert result.success is False
        assert result.error == "Unclosed single quote"

    @pytest.mark.parametrize("command", ["", "   ", "\t\n"])
    def test_empty_command(self, command: str) -> None:
        """Empty or whitespace-only input should fail."""
        result = parse_command(command)
        assert result.success is False
        assert result.error == "Empty command"

    def test_only_empty_quotes(self) -> None:
        """Input that yields zero tokens should fail."""
        result = parse_command("''")
        assert result.success is False
        assert result.error == "No command found"

    def test_non_string_input(self) -> None:
        """Non-string input should fail, not raise."""
        result = parse_command(None)  # type: ignore[arg-type]
        assert result.success is False
        assert result.error == "Invalid command"

    def test_result_is_frozen(self) -> None:
        """Parse results should be immutable."""
        result = parse_command("ls")
        with pytest.raises(AttributeError):
            result.argv = ("rm",)  # type: ignore[misc]

    def test_base_command_empty(self) -> None:
        """Failed parses have no base command."""
        assert ParseResult(command="", success=False).base_command is None


class TestExtractPaths:
    """Tests for path extraction."""

    def test_absolute_and_relative_paths(self) -> None:
        """Should keep path-looking arguments."""
        argv = ("cp", "/etc/hosts", "./backup", "../other", "~/notes")
        assert extract_paths(argv) == ["/etc/hosts", "./backup", "../other", "~/notes"]

    def test_skips_command_and_flags(self) -> None:
        """The command name and bare flags are never paths."""
        assert extract_paths(("./run.sh", "-v", "--out", "--color=auto")) == []

    def test_flag_values_checked(self) -> None:
        """The value of --opt=value is checked like any other argument."""
        argv = ("cp", "--target-directory=/etc", "-o=build/out.txt", "a.txt")
        assert extract_paths(argv) == ["/etc", "build/out.txt", "a.txt"]

    def test_empty_flag_value(self) -> None:
        assert extract_paths(("cp", "--target-directory=", "a.txt")) == ["a.txt"]

    def test_file_extensions(self) -> None:
        """Bare file names with known extensions are paths."""
        assert extract_paths(("cat", "README.md", "package.json", "hello")) == [
            "README.md",
            "package.json",
        ]

    def test_special_names(self) -> None:
        """Dot, dot-dot and tilde are paths."""
        assert extract_paths(("ls", ".", "..", "~")) == [".", "..", "~"]

    def test_nested_relative_path(self) -> None:
        """Arguments containing a separator are paths."""
        assert extract_paths(("cat", "src/main.c")) == ["src/main.c"]

    def test_urls_are_not_paths(self) -> None:
        """URLs should not be treated as paths."""
        assert extract_paths(("curl", "https://example.com/file.txt")) == []

    def test_windows_path(self) -> None:
        """Drive-letter paths are recognized."""
        assert looks_like_path("C:\\Users\\me") is True

    def test_plain_word(self) -> None:
        """Plain words are not paths."""
        assert looks_like_path("status") is False


class TestExtractDomains:
    """Tests for domain extraction."""

    def test_url_hosts(self) -> None:
        """Should collect unique lowercased URL hosts."""
        command = "curl https://API.example.com/v1 http://api.example.com:8080/x"
        assert extract_domains(command) == ["api.example.com"]

    def test_multiple_hosts_in_order(self) -> None:
        """Hosts keep their order of first appearance."""
        command = "wget https://a.test/x && curl https://b.test/y"
        assert extract_domains(command) == ["a.test", "b.test"]

    @pytest.mark.parametrize(
        "command,registry",
        [
            ("npm install react", "registry.npmjs.org"),
            ("npx create-app", "registry.npmjs.org"),
            ("pnpm add lodash", "registry.npmjs.org"),
            ("yarn add lodash", "registry.yarnpkg.com"),
            ("pip install requests", "pypi.org"),
            ("pip3 install requests", "pypi.org"),
        ],
    )
    def test_package_manager_registry(self, command: str, registry: str) -> None:
        """Package managers imply their registry host."""
        assert extract_domains(command) == [registry]

    def test_package_manager_after_operator(self) -> None:
        """A package manager later in a pipeline still counts."""
        assert extract_domains("cd app && npm ci") == ["registry.npmjs.org"]

    def test_no_domains(self) -> None:
        """Plain local commands contact nothing."""
        assert extract_domains("ls -la") == []

    def test_word_containing_manager_name(self) -> None:
        """Only whole words match a package manager."""
        assert extract_domains("cat npmrc-notes") == []


class TestHashCommand:
    """Tests for command hashing."""

    def test_stable(self) -> None:
        """Same input gives the same hash."""
        assert hash_command(("ls", "-la"), "/work") == hash_command(("ls", "-la"), "/work")

    def test_depends_on_cwd(self) -> None:
        """Hash should include the working directory."""
        assert hash_command(("ls",), "/a") != hash_command(("ls",), "/b")

    def test_depends_on_argv(self) -> None:
        """Hash should include every argument."""
        assert hash_command(("ls", "a"), "/w") != hash_command(("ls", "b"), "/w")

    def test_base36_output(self) -> None:
        """Hash is rendered in lowercase base 36."""
        digest = hash_command(("git", "status"), "/work")
        assert digest
        assert set(digest) <= set("0123456789abcdefghijklmnopqrstuvwxyz")

    def test_known_value(self) -> None:
        """Hash should match a hand-computed FNV-1a of one code unit."""
        # "" + "@" + "" hashes the single code unit "@"
        h = (2166136261 ^ ord("@")) * 16777619 & 0xFFFFFFFF
        if h >= 0x80000000:
            h -= 0x100000000
        expected = abs(h)
        digits = "0123456789abcdefghijklmnopqrstuvwxyz"
        out = ""
        while expected:
            expected, rem = divmod(expected, 36)
            out = digits[rem] + out
        assert hash_command((), "") == out
