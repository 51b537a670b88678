"""Unit tests for the source-tree dependency scanner."""

from pathlib import Path

import pytest

from envx.scanner import (
    BATCH,
    CPP,
    DOTNET,
    JVM,
    MAKE,
    PHP,
    POWERSHELL,
    RUBY,
    RUST,
    SHELL,
    C,
    DependencyScanner,
    pack_for,
)


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


class TestScenario:
    def test_counts_and_unused(self, tmp_path: Path):
        """
        Given a JS file reading A twice and B once, and a Python file reading A
        When the tree is scanned
        Then A has 3 usages, B has 1, and C is unused
        """
        _write(tmp_path / "web" / "app.js", 'process.env.A;\nprocess.env.A;\nprocess.env["B"];\n')
        _write(tmp_path / "util.py", 'import os\nos.getenv("A")\n')

        scanner = DependencyScanner(roots=[tmp_path])
        scanner.scan()

        assert scanner.usage_counts() == {"A": 3, "B": 1}
        assert scanner.find_unused({"A", "B", "C"}) == {"C"}

    def test_rescan_does_not_double_count(self, tmp_path: Path):
        """
        Given a scanned tree
        When scan runs again
        Then counts are unchanged
        """
        _write(tmp_path / "a.py", 'os.environ["X"]\n')
        scanner = DependencyScanner(roots=[tmp_path])

        scanner.scan()
        scanner.scan()

        assert scanner.usage_counts() == {"X": 1}

    def test_usage_location(self, tmp_path: Path):
        """
        Given a Go file reading PORT on its third line
        When scanned
        Then the usage records file, line and trimmed context
        """
        path = _write(tmp_path / "main.go", 'package main\n\n    port := os.Getenv("PORT")\n')
        scanner = DependencyScanner(roots=[tmp_path])
        scanner.scan()

        [usage] = scanner.usages("PORT")

        assert usage.file == path
        assert usage.line == 3
        assert usage.context == 'port := os.Getenv("PORT")'


class TestLanguagePacks:
    def test_shell_deny_list_and_comments(self):
        """
        Given shell lines with positional, builtin and real variables
        When names are extracted
        Then only the real variables remain and comment lines yield nothing
        """
        assert SHELL.names_in("echo $HOME ${DB_URL:-x} $1 $PWD") == ["HOME", "DB_URL"]
        assert SHELL.names_in("export FOO=bar") == ["FOO"]
        assert SHELL.names_in("  # $IGNORED") == []

    def test_batch(self):
        """
        Given batch lines
        When names are extracted
        Then dynamic builtins and REM lines are ignored
        """
        assert BATCH.names_in("echo %CD% %APP_HOME%") == ["APP_HOME"]
        assert BATCH.names_in("set OUT=1") == ["OUT"]
        assert BATCH.names_in("REM %SKIPPED%") == []

    def test_make(self):
        """
        Given a make recipe line
        When names are extracted
        Then make's own variables are ignored
        """
        assert MAKE.names_in("\t$(CC) -o $(BUILD_DIR)/app $(SHELL)") == ["CC", "BUILD_DIR"]

    def test_c_comment_lines(self):
        """
        Given a commented-out getenv call and a real one
        When names are extracted
        Then only the real call counts
        """
        assert C.names_in('// getenv("SKIP")') == []
        assert C.names_in('char *h = getenv("HOME");') == ["HOME"]

    def test_powershell_is_case_insensitive(self):
        """
        Given $ENV:Path in mixed case
        When names are extracted
        Then the name is found
        """
        assert POWERSHELL.names_in("Write-Host $ENV:Path") == ["Path"]

    @pytest.mark.parametrize(
        ("pack", "line", "expected"),
        [
            (RUST, 'let id = env!("BUILD_ID");', ["BUILD_ID"]),
            (RUST, 'let home = std::env::var_os("HOME_DIR");', ["HOME_DIR"]),
            (JVM, 'String opts = getenv().get("JAVA_OPTS");', ["JAVA_OPTS"]),
            (DOTNET, 'Environment.SetEnvironmentVariable("DOTNET_ENV", "x");', ["DOTNET_ENV"]),
            (RUBY, 'env = ENV.fetch("RAILS_ENV", "development")', ["RAILS_ENV"]),
            (PHP, "$host = $_SERVER['HTTP_HOST'];", ["HTTP_HOST"]),
            (CPP, 'auto v = boost::this_process::environment["BOOST_VAR"];', ["BOOST_VAR"]),
        ],
    )
    def test_pack_shapes(self, pack, line, expected):
        """
        Given a line using one language's environment accessor
        When names are extracted with that language's pack
        Then the variable name is captured
        """
        assert pack.names_in(line) == expected

    def test_cpp_std_getenv(self):
        """
        Given std::getenv, which both the C and the std:: pattern match
        When names are extracted
        Then only that name is reported
        """
        assert set(CPP.names_in('auto p = std::getenv("CPP_HOME");')) == {"CPP_HOME"}

    @pytest.mark.parametrize(
        ("name", "text", "expected"),
        [
            ("Makefile", None, MAKE),
            ("GNUmakefile", None, MAKE),
            ("build.mk", None, MAKE),
            ("App.kt", None, JVM),
            ("Program.fs", None, DOTNET),
            ("Tools.psm1", None, POWERSHELL),
            ("setup.zsh", None, SHELL),
            ("deploy", "#!/bin/sh\necho $X\n", SHELL),
            ("README", "plain words", None),
            ("image.png", None, None),
        ],
    )
    def test_pack_for(self, name, text, expected):
        """
        Given a file name and optional first line
        When a language pack is chosen
        Then the suffix, Makefile name or shebang decides
        """
        assert pack_for(Path(name), text) is expected


class TestFiltering:
    def test_ignored_directories_are_pruned(self, tmp_path: Path):
        """
        Given references inside node_modules and a user-ignored fixtures directory
        When scanned with fixtures as an extra ignore
        Then only the top-level reference is found
        """
        _write(tmp_path / "index.js", "process.env.KEEP\n")
        _write(tmp_path / "node_modules" / "lib" / "x.js", "process.env.VENDOR\n")
        _write(tmp_path / "test_fixtures" / "y.js", "process.env.FIXTURE\n")

        scanner = DependencyScanner(roots=[tmp_path], extra_ignore=["fixtures"])
        scanner.scan()

        assert scanner.used_variables() == {"KEEP"}

    def test_binary_and_unknown_files_are_skipped(self, tmp_path: Path):
        """
        Given a non-UTF-8 .js file and an unknown-suffix file
        When scanned
        Then neither contributes references
        """
        (tmp_path / "blob.js").write_bytes(b"\xff\xfeprocess.env.BINARY\n")
        _write(tmp_path / "notes.md", "process.env.DOCS\n")

        scanner = DependencyScanner(roots=[tmp_path])
        scanner.scan()

        assert scanner.used_variables() == set()

    def test_shebang_script_without_suffix(self, tmp_path: Path):
        """
        Given an extension-less script with a shebang
        When scanned
        Then it is read with the shell pack
        """
        _write(tmp_path / "bin" / "deploy", "#!/bin/bash\necho $DEPLOY_TARGET\n")

        scanner = DependencyScanner(roots=[tmp_path])
        scanner.scan()

        assert scanner.used_variables() == {"DEPLOY_TARGET"}

    def test_shebang_script_with_unknown_suffix(self, tmp_path: Path):
        """
        Given a script whose extension matches no pack but which starts with a shebang
        When scanned
        Then it is read with the shell pack
        """
        _write(tmp_path / "deploy.prod", "#!/bin/sh\necho $DEPLOY_TARGET\n")

        scanner = DependencyScanner(roots=[tmp_path])
        scanner.scan()

        assert scanner.used_variables() == {"DEPLOY_TARGET"}

    def test_single_file_root(self, tmp_path: Path):
        """
        Given a root that is a file rather than a directory
        When scanned
        Then that file is scanned
        """
        path = _write(tmp_path / "one.rb", 'ENV["RUBY_VAR"]\n')
        scanner = DependencyScanner()
        scanner.add_path(path)

        assert scanner.scan() == 1
        assert scanner.used_variables() == {"RUBY_VAR"}
