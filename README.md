# scanopts

`scanopts` holds the command-side building blocks of a vulnerability and
misconfiguration scanner. It does not scan anything itself. It covers:

- **Options** (`scanopts.options`, `scanopts.commands`). These parse and check
  the global, artifact, cache, DB, image, report and config-scanning options.
  They also build the option sets for the artifact, client and server commands.
- **Types** (`scanopts.types`). These are severities, vulnerability types,
  security checks, analyzer types, and scan results and reports.
- **The vulnerability DB client** (`scanopts.dbclient`). It decides whether
  the local DB needs an update, from its metadata, and downloads it.
- **Caches**:
  - `scanopts.remote` is a remote artifact/blob cache spoken to over HTTP.
  - `scanopts.operation` holds the local filesystem and Redis caches, and the
    reset and clear operations.
- **Run flows** (`scanopts.artifact`, `scanopts.client`). These set up a scan
  run from the options, filter the results and work out the exit code.
- **An end-of-life helper** (`scanopts.eol`). It prints distribution EOL dates
  taken from CSV data.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Examples

Parse a severity:

```python
from scanopts.types import parse_severity

parse_severity("CRITICAL")
```

An unknown name raises `UnknownSeverityError`.

Turn `name:value` strings into request headers:

```python
from scanopts.commands import split_custom_headers

split_custom_headers(["x-api-token:token"])
```

Entries without a colon are skipped.

Invalid option combinations raise `scanopts.options.OptionError`. Two examples:

- giving both `--skip-db-update` and `--download-db-only`;
- naming a cache backend other than `fs` or `redis://...`.

## End-of-life dates

```
scanopts-eol
```

The command reads `data/debian.csv` and `data/ubuntu.csv` from the current
directory. For each release it prints its name and end-of-life date.