import json
import subprocess
from html.parser import HTMLParser
from pathlib import Path

import pytest

from borrowlens.block import CodeBlock, parse_blocks
from borrowlens.cache import Cache
from borrowlens.preprocessor import (
    AquascopeFailure,
    Preprocessor,
    render_embed,
    response_is_error,
)


class FakeRunner:
    def __init__(self, stdout=b'{"Ok": 1}', stderr=b"", returncode=0, new_code=0, timeout=False):
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
        self.new_code = new_code
        self.timeout = timeout
        self.calls = []
        self.written = []

    def __call__(self, args, *, cwd, env, timeout):
        args = list(args)
        self.calls.append((args, Path(cwd), dict(env), timeout))
        if args[:2] == ["cargo", "new"]:
            (Path(cwd) / args[-1] / "src").mkdir(parents=True)
            return subprocess.CompletedProcess(args, self.new_code, b"", b"")
        self.written.append((Path(cwd) / "src" / "main.rs").read_text())
        if self.timeout:
            raise subprocess.TimeoutExpired(args, timeout)
        return subprocess.CompletedProcess(args, self.returncode, self.stdout, self.stderr)

    def tool_calls(self):
        return [call for call in self.calls if call[0][:2] == ["cargo", "aquascope"]]


class _Attrs(HTMLParser):
    def __init__(self):
        super().__init__()
        self.found = []

    def handle_starttag(self, tag, attrs):
        self.found.append((tag, dict(attrs)))


def attrs_of(markup):
    parser = _Attrs()
    parser.feed(markup)
    return parser.found[0][1]


def make(tmp_path, runner):
    cache = Cache(tmp_path / "cache")
    return Preprocessor(cache, tmp_path / "sysroot", tmp_path / "lib", runner)


def block(operations=("interpreter",), config=(), code="fn main() {}"):
    return CodeBlock(operations=list(operations), config=list(config), code=code)


def test_response_is_error():
    assert response_is_error({"Err": "x"})
    assert not response_is_error({"Ok": 1})
    assert response_is_error([{"Ok": 1}, {"Err": 2}])
    assert not response_is_error([{"Ok": 1}, 3])
    assert not response_is_error("Err")


def test_run_aquascope_collects_responses_and_writes_code(tmp_path):
    runner = FakeRunner(stdout=b'{"Ok": [1, 2]}')
    pre = make(tmp_path, runner)
    result = pre.run_aquascope(block(operations=["interpreter", "permissions"], code="fn main() { 1; }"))
    assert json.loads(result) == {"interpreter": {"Ok": [1, 2]}, "permissions": {"Ok": [1, 2]}}
    assert runner.written == ["fn main() { 1; }", "fn main() { 1; }"]


def test_run_aquascope_passes_flags_and_environment(tmp_path):
    runner = FakeRunner()
    pre = make(tmp_path, runner)
    pre.run_aquascope(block(config=[("shouldFail", "true"), ("showFlows", "true")]))
    args, cwd, env, timeout = runner.tool_calls()[0]
    assert args == ["cargo", "aquascope", "--should-fail", "interpreter", "--show-flows"]
    assert cwd.name == "example"
    assert env["MIRI_SYSROOT"] == str(tmp_path / "sysroot")
    assert env["SYSROOT"] == str(tmp_path / "sysroot")
    assert env["LD_LIBRARY_PATH"] == str(tmp_path / "lib")
    assert timeout == 10.0


def test_run_aquascope_without_flags(tmp_path):
    runner = FakeRunner()
    make(tmp_path, runner).run_aquascope(block(config=[("foo", "bar")]))
    assert runner.tool_calls()[0][0] == ["cargo", "aquascope", "interpreter"]


def test_cargo_new_failure(tmp_path):
    pre = make(tmp_path, FakeRunner(new_code=1))
    with pytest.raises(AquascopeFailure, match="Cargo failed"):
        pre.run_aquascope(block())


def test_timeout_is_reported(tmp_path):
    pre = make(tmp_path, FakeRunner(timeout=True))
    with pytest.raises(AquascopeFailure, match="Aquascope timed out on program:\nfn main"):
        pre.run_aquascope(block())


def test_nonzero_exit_reports_stderr(tmp_path):
    pre = make(tmp_path, FakeRunner(returncode=1, stderr=b"boom"))
    with pytest.raises(AquascopeFailure) as info:
        pre.run_aquascope(block())
    assert str(info.value).endswith("with error:\nboom")


def test_err_response_is_failure(tmp_path):
    pre = make(tmp_path, FakeRunner(stdout=b'[{"Err": 1}]', stderr=b"bad"))
    with pytest.raises(AquascopeFailure, match="bad"):
        pre.run_aquascope(block())


def test_build_error_is_failure(tmp_path):
    pre = make(tmp_path, FakeRunner(stdout=b'{"type": "BuildError"}'))
    with pytest.raises(AquascopeFailure, match="Aquascope failed for program"):
        pre.run_aquascope(block())


def test_render_embed_round_trips_data(tmp_path):
    b = block(config=[("foo", "bar"), ("baz", "true")], code='let s = "<&>";')
    attrs = attrs_of(render_embed(b, {"interpreter": [1]}))
    assert attrs["class"] == "aquascope-embed"
    assert json.loads(attrs["data-code"]) == 'let s = "<&>";'
    assert json.loads(attrs["data-operations"]) == ["interpreter"]
    assert json.loads(attrs["data-responses"]) == {"interpreter": [1]}
    assert json.loads(attrs["data-config"]) == {"foo": "bar", "baz": "true"}
    assert json.loads(attrs["data-no-interact"]) is True
    assert json.loads(attrs["data-annotations"]) == b.annotations.to_json()


def test_process_code_uses_cache(tmp_path):
    runner = FakeRunner(stdout=b'{"Ok": 5}')
    pre = make(tmp_path, runner)
    b = block()
    first = pre.process_code(b)
    second = pre.process_code(b)
    assert first == second
    assert len(runner.tool_calls()) == 1
    assert json.loads(pre.cache.get(b)) == {"interpreter": {"Ok": 5}}


def test_replacements_blocks_then_permissions(tmp_path):
    content = "Intro @Perm{read}\n```aquascope,interpreter\nfn main() {}\n```\n"
    pre = make(tmp_path, FakeRunner())
    result = pre.replacements(content)
    (block_range, _), = parse_blocks(content)
    assert [r for r, _ in result] == [block_range, range(6, 17)]
    assert result[1][1] == '<span class="perm read">R</span>'
    assert attrs_of(result[0][1])["class"] == "aquascope-embed"


def test_save_cache_persists(tmp_path):
    pre = make(tmp_path, FakeRunner(stdout=b'{"Ok": 7}'))
    b = block()
    pre.process_code(b)
    pre.save_cache()
    reloaded = Cache(tmp_path / "cache")
    assert reloaded.get(b) == pre.cache.get(b)