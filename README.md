# borrowlens

borrowlens is an mdBook preprocessor. It finds specially marked Rust code
blocks in your chapters, runs the `cargo aquascope` command on them, and
replaces each block with an HTML element (`<div class="aquascope-embed" ...>`)
carrying the code, its annotations and the command's JSON output as `data-*`
attributes. It also turns inline permission markers into small styled badges.

It also includes a small HTTP server for trying the analyses locally.

## Requirements

- Python 3.11 or later
- A Rust toolchain with `cargo`, `rustup` and Miri, plus the `cargo aquascope`
  subcommand installed and on your `PATH`

Toolchain lookup:

- `MIRI_SYSROOT`, if set, is used as the Miri sysroot; otherwise
  `cargo miri setup --print-sysroot` is run.
- `RUSTC_PATH`, if set, chooses the `rustc` binary; otherwise
  `rustup which --toolchain <channel> rustc` is used when a
  `rust-toolchain.toml` with a `[toolchain] channel` is found in the current
  directory, and `which rustc` when it is not.

## Installation

```
pip install .
```

## Using it with mdBook

Register the preprocessor in your `book.toml`:

```toml
[preprocessor.aquascope]
command = "borrowlens"
```

mdBook then runs `borrowlens` during every build: it reads the
`[context, book]` JSON pair on standard input and writes the rewritten book
to standard output. `borrowlens supports <renderer>` always succeeds.

### Code blocks

A block starts with `aquascope`, followed by one or more operations joined
with `+`, followed by optional `key=value` or bare `key` settings (a bare key
means `true`):

````
```aquascope,interpreter,shouldFail
fn main() {
  let x = 1;`[]`
}
```
````

Each operation is run as `cargo aquascope <operation>` in a fresh temporary
project, with a 10 second limit. Recognised settings:

- `shouldFail` — pass `--should-fail`
- `showFlows` — pass `--show-flows`

All settings are also passed to the frontend in the `data-config` attribute.
The build fails if the command fails, times out, or reports an error.

### Annotations inside a block

- A line starting with `#` is hidden from the reader (write `\#` for a
  literal `#`).
- `` `[]` `` marks a point where the interpreter state is shown.
- `` `(focus,paths:x,rxpaths:y)` `` focuses a line in the permission stepper,
  optionally highlighting paths matched literally (`paths`) or by regular
  expression (`rxpaths`).
- `` `{}` `` focuses a line for permission boundaries.

### Inline permissions

Anywhere in a chapter you can write `@Perm{read}`, `@Perm{write}`,
`@Perm{own}` or `@Perm{flow}`, optionally with `[gained]`, `[lost]` or
`[missing]` after `@Perm`, e.g. `@Perm[lost]{read}`. Any other permission
name or option fails the build.

### Caching

Results are cached in a gzip-compressed JSON file named `.aquascope-cache` in
the directory the book is built from. A block whose operations, settings and
code are unchanged is not analysed again.

## Using it from Python

- `borrowlens.block.parse_blocks(text)` finds blocks and their character
  ranges; `borrowlens.annotations.parse_annotations(code)` strips annotation
  markers; `borrowlens.permissions.parse_perms(text)` yields permission
  badge replacements.
- `borrowlens.preprocessor.create_preprocessor()` builds a `Preprocessor`
  from the local toolchain; its `replacements(text)` returns
  `(range, html)` pairs, and `borrowlens.cli.apply_replacements` and
  `borrowlens.cli.preprocess_book` apply them.
- `borrowlens.trace` holds execution trace types (`Trace`, `Step`, `Frame`,
  ...) with `to_json()` and `group_steps(trace, abstract_loc)`, which merges
  runs of steps that map to the same location.

## Local development server

```
borrowlens-serve
```

starts an HTTP server for local debugging. Requests are processed on your own
machine, without authentication. It listens on `127.0.0.1:8008` by default;
set `AQUASCOPE_SERVER_ADDRESS` (an IP address) and `AQUASCOPE_SERVER_PORT` to
change that.

Endpoints:

- `GET /hi` — replies `HELLO!`
- `POST /permissions` — body `{"code": "..."}`, runs
  `cargo aquascope permissions`
- `POST /interpreter` — body `{"code": "...", "config": {...}}`, runs
  `cargo aquascope interpreter`; a `shouldFail` key in `config` adds
  `--should-fail`

A successful run replies with a JSON object holding `success`, `stdout` and
`stderr`. A body that cannot be decoded gets `{"error": "..."}`; a failure to
set up or run the command gets status 500 with a plain-text message; unknown
paths get 404. Commands are limited to 20 seconds.

## What it does not do

- It does not analyse or execute Rust itself; all results come from the
  external `cargo aquascope` command.
- It does not ship or link the JavaScript and CSS frontend that turns the
  `aquascope-embed` elements into interactive views; add those to your book
  yourself.

## Running the tests

```
pip install ".[test]"
pytest
```