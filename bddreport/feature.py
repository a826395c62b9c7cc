"""Gherkin document model and lookups inside a parsed feature."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator


@dataclass
class Location:
    line: int = 0
    column: int = 0


@dataclass
class Tag:
    location: Location = field(default_factory=Location)
    name: str = ""
    id: str = ""


@dataclass
class Comment:
    location: Location = field(default_factory=Location)
    text: str = ""


@dataclass
class TableCell:
    location: Location = field(default_factory=Location)
    value: str = ""


@dataclass
class TableRow:
    id: str = ""
    location: Location = field(default_factory=Location)
    cells: list[TableCell] = field(default_factory=list)


@dataclass
class DocString:
    location: Location = field(default_factory=Location)
    content: str = ""
    delimiter: str = '"""'
    media_type: str = ""


@dataclass
class DataTable:
    location: Location = field(default_factory=Location)
    rows: list[TableRow] = field(default_factory=list)


@dataclass
class Step:
    id: str = ""
    location: Location = field(default_factory=Location)
    keyword: str = ""
    text: str = ""
    doc_string: DocString | None = None
    data_table: DataTable | None = None


@dataclass
class Examples:
    id: str = ""
    location: Location = field(default_factory=Location)
    keyword: str = ""
    name: str = ""
    description: str = ""
    tags: list[Tag] = field(default_factory=list)
    table_header: TableRow | None = None
    table_body: list[TableRow] = field(default_factory=list)


@dataclass
class Background:
    id: str = ""
    location: Location = field(default_factory=Location)
    keyword: str = ""
    name: str = ""
    description: str = ""
    steps: list[Step] = field(default_factory=list)


@dataclass
class Scenario:
    id: str = ""
    location: Location = field(default_factory=Location)
    keyword: str = ""
    name: str = ""
    description: str = ""
    tags: list[Tag] = field(default_factory=list)
    steps: list[Step] = field(default_factory=list)
    examples: list[Examples] = field(default_factory=list)


@dataclass
class RuleChild:
    background: Background | None = None
    scenario: Scenario | None = None


@dataclass
class Rule:
    id: str = ""
    location: Location = field(default_factory=Location)
    keyword: str = ""
    name: str = ""
    description: str = ""
    tags: list[Tag] = field(default_factory=list)
    children: list[RuleChild] = field(default_factory=list)


@dataclass
class FeatureChild:
    rule: Rule | None = None
    background: Background | None = None
    scenario: Scenario | None = None


@dataclass
class GherkinFeature:
    location: Location = field(default_factory=Location)
    keyword: str = ""
    name: str = ""
    description: str = ""
    language: str = "en"
    tags: list[Tag] = field(default_factory=list)
    children: list[FeatureChild] = field(default_factory=list)


@dataclass
class GherkinDocument:
    uri: str = ""
    feature: GherkinFeature | None = None
    comments: list[Comment] = field(default_factory=list)


@dataclass
class PickleDocString:
    content: str = ""
    media_type: str = ""


@dataclass
class PickleTableCell:
    value: str = ""


@dataclass
class PickleTableRow:
    cells: list[PickleTableCell] = field(default_factory=list)


@dataclass
class PickleTable:
    rows: list[PickleTableRow] = field(default_factory=list)


@dataclass
class PickleStepArgument:
    doc_string: PickleDocString | None = None
    data_table: PickleTable | None = None


@dataclass
class PickleStep:
    id: str = ""
    text: str = ""
    ast_node_ids: list[str] = field(default_factory=list)
    argument: PickleStepArgument | None = None


@dataclass
class PickleTag:
    name: str = ""
    ast_node_id: str = ""


@dataclass
class Pickle:
    id: str = ""
    uri: str = ""
    name: str = ""
    language: str = "en"
    steps: list[PickleStep] = field(default_factory=list)
    tags: list[PickleTag] = field(default_factory=list)
    ast_node_ids: list[str] = field(default_factory=list)


@dataclass
class Feature(GherkinDocument):
    """A parsed gherkin document together with its pickles and raw content."""

    pickles: list[Pickle] = field(default_factory=list)
    content: bytes = b""

    def _children(self) -> list[FeatureChild]:
        return self.feature.children if self.feature is not None else []

    def _scenarios(self) -> Iterator[Scenario]:
        for child in self._children():
            if child.scenario is not None:
                yield child.scenario
            if child.rule is not None:
                for rule_child in child.rule.children:
                    if rule_child.scenario is not None:
                        yield rule_child.scenario

    def _step_lists(self) -> Iterator[list[Step]]:
        for child in self._children():
            if child.rule is not None:
                for rule_child in child.rule.children:
                    if rule_child.scenario is not None:
                        yield rule_child.scenario.steps
                    if rule_child.background is not None:
                        yield rule_child.background.steps
            if child.scenario is not None:
                yield child.scenario.steps
            if child.background is not None:
                yield child.background.steps

    def find_rule(self, scenario_id: str) -> Rule | None:
        """Return the rule that holds the given scenario, if any."""
        for child in self._children():
            rule = child.rule
            if rule is not None and any(
                rc.scenario is not None and rc.scenario.id == scenario_id
                for rc in rule.children
            ):
                return rule
        return None

    def find_scenario(self, scenario_id: str) -> Scenario | None:
        """Return the scenario with this id, in the feature or one of its rules."""
        return next((sc for sc in self._scenarios() if sc.id == scenario_id), None)

    def find_background(self, scenario_id: str) -> Background | None:
        """Return the background that applies to the given scenario."""
        background = None
        for child in self._children():
            if child.background is not None:
                background = child.background
            if child.scenario is not None and child.scenario.id == scenario_id:
                return background
            if child.rule is not None:
                for rule_child in child.rule.children:
                    if rule_child.background is not None:
                        background = rule_child.background
                    if (
                        rule_child.scenario is not None
                        and rule_child.scenario.id == scenario_id
                    ):
                        return background
        return None

    def find_example(
        self, example_id: str
    ) -> tuple[Examples, TableRow] | tuple[None, None]:
        """Return the examples table and body row with the given row id."""
        for scenario in self._scenarios():
            for examples in scenario.examples:
                for row in examples.table_body:
                    if row.id == example_id:
                        return examples, row
        return None, None

    def find_step(self, step_id: str) -> Step | None:
        """Return the step with this id from any scenario or background."""
        for steps in self._step_lists():
            for step in steps:
                if step.id == step_id:
                    return step
        return None