# bddreport

Building blocks for reporting on behaviour-driven test runs written in
Gherkin. The package holds:

- `bddreport.feature`: dataclasses for a parsed Gherkin document and its
  pickles, and `Feature`, which adds the lookups `find_scenario`,
  `find_background`, `find_example`, `find_step` and `find_rule`;
- `bddreport.results`: `StepResultStatus` (passed, failed, skipped,
  undefined, pending), the result records `TestRunStarted`,
  `PickleResult` and `PickleStepResult`, `new_step_result`, and the ANSI
  colour helpers `red`, `green`, `yellow`, `cyan`, `black`, `white` and
  `bold`;
- `bddreport.stepdef`: `StepDefinition`, which converts matched step
  arguments to a handler's annotated parameter types and calls it, and
  `Context`;
- `bddreport.parser`: `extract_feature_path_line`;
- the formatters `pretty`, `progress`, `cucumber` (JSON), `junit` (XML)
  and `events` (JSON event stream), and `bddreport.multi.MultiFormatter`,
  which sends one run to several of them at once.

## Installation

```
pip install bddreport
```

The package has no runtime dependencies beyond the standard library.

## Feature paths with line numbers

A feature path may carry a line number that picks a single scenario:

```python
from bddreport.parser import extract_feature_path_line

extract_feature_path_line("features/login.feature:21")
# ('features/login.feature', 21)
extract_feature_path_line("features/login.feature")
# ('features/login.feature', -1)
```

## Colours

```python
from bddreport.results import StepResultStatus, bold, green, red

print(green("3 passed"), bold(red)("1 failed"))
print(StepResultStatus.FAILED.color()(str(StepResultStatus.FAILED)))
```

## Step definitions

A `StepDefinition` holds a handler, an optional compiled expression and
the arguments matched from the step text. `run(ctx)` converts each
argument to the type of the matching positional parameter and calls the
handler:

- `str` (or no annotation) takes the text; `bytes` takes it encoded;
- `int` and `float` parse the text; `Annotated[int, 8]`, `16`, `32`, `64`
  and `Annotated[float, 32]` also check the range of that width;
- `PickleDocString` and `PickleTable` take a step's doc string or table.

A handler may take a `Context` as its first parameter, and may return a
new `Context`, a `(Context, value)` pair or any other value. `run`
returns the context and that value:

```python
from bddreport.stepdef import Context, StepDefinition

def add(ctx: Context, a: int, b: int) -> Context:
    return ctx.with_value("sum", a + b)

ctx, _ = StepDefinition(handler=add, args=["2", "3"]).run(Context())
ctx.value("sum")  # 5
```

When the arguments do not fit the handler, `run` raises
`UnmatchedStepArgumentNumber`, `CannotConvert` or
`UnsupportedArgumentType`, all subclasses of `StepArgumentError`.

## Formatters

Each formatter module registers its formatter under a name when it is
imported; importing `bddreport.multi` imports all of them.

```python
import sys
import bddreport.multi  # registers every formatter
from bddreport.base import find_formatter, formatter_descriptions

for name, description in formatter_descriptions().items():
    print(f"{name:10} {description}")

make = find_formatter("progress")
fmt = make("my-suite", sys.stdout)
```

The factories are also available directly: `base_formatter`,
`cucumber_formatter`, `junit_formatter`, `events_formatter`,
`progress_formatter` and `pretty_formatter`. The classes `Base`,
`Progress` and `Pretty` also accept a `clock` callable that returns the
current time. Your own formatters can be made known with
`register_formatter(name, description, factory)`.

A formatter receives the run's storage through `set_storage`, then the
events of the run in order: `test_run_started`, `feature`, `pickle`,
`defined`, one of `passed`, `failed`, `skipped`, `undefined` or `pending`
per step, and finally `summary`. The summary prints scenario and step
counts, the elapsed time and, for undefined steps, Python snippets to
start step definitions from.

Two environment variables are read: `BDDREPORT_SEED` (a non-zero value is
printed as the randomisation seed in the summary) and
`BDDREPORT_TESTED_PACKAGE` (a prefix removed from the handler names in
step definition ids).

To write several reports from one run, combine formatters:

```python
import sys
from bddreport.multi import MultiFormatter

multi = MultiFormatter()
multi.add("pretty")                             # goes to the default stream
multi.add("junit", open("report.xml", "w"))     # goes to its own file
fmt = multi.formatter_func("my-suite", sys.stdout)
```

`add` raises `ValueError` for an unknown name. `formatter_func` returns a
`Repeater`, a list of formatters that hands each event on to all of them.

## What the package does not do

The package does not read or parse `.feature` files, does not find or run
step definitions, and has no command line. It also has no storage of its
own: the formatters read the run from an object you pass to
`set_storage`, which must provide `must_get_test_run_started`,
`must_get_pickle_results`, `must_get_pickle_result`,
`must_get_pickle_step_results_by_pickle_id`,
`must_get_pickle_step_results_by_status`, `must_get_pickle_step_result`,
`must_get_pickle_step`, `must_get_pickle`, `must_get_pickles`,
`must_get_feature` and `must_get_features`, and, for the `events`
formatter, `must_get_step_definition_match`.

## Running the tests

```
pip install -e ".[test]"
pytest
```