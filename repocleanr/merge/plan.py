"""Merge plan validation and YAML loading.

A plan file names the source repositories, the target, and the options of
one merge run::

    sources:
      - octo/alpha
      - octo/beta
    target: octo/combined
    layout: separate-folders
    branch: main
    conservative: false
    conservative_delay_seconds: 15

Validation happens before any remote call is made.
"""

from __future__ import annotations

import typing as typ
from pathlib import Path

import msgspec
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from repocleanr.github.models import RepositoryRef

from .errors import MergePlanValidationError
from .models import MergeLayout, MergePlan

YAML_VERSION = (1, 2)
MIN_SOURCES = 2


class PlanDocument(msgspec.Struct, kw_only=True, forbid_unknown_fields=True):
    """Schema of a merge plan file.

    Attributes
    ----------
    sources : list[str]
        ``owner/name`` slugs of the repositories to merge, in order.
    target : str
        ``owner/name`` slug of the repository receiving the files.
    layout : str
        ``separate-folders`` (default) or ``flat``.
    branch : str
        Target branch; ``main`` follows the target's default branch.
    conservative : bool
        Read sources with the slow root-only reader.
    conservative_delay_seconds : int
        Pause between repositories in conservative mode.
    empty_placeholder : bool
        Write ``<repo>/.gitkeep`` for empty sources in separate-folders layout.

    """

    sources: list[str]
    target: str
    layout: typ.Literal["separate-folders", "flat"] = "separate-folders"
    branch: str = "main"
    conservative: bool = False
    conservative_delay_seconds: int = 15
    empty_placeholder: bool = False


def validate_plan(plan: MergePlan) -> MergePlan:
    """Return ``plan`` unchanged when it is well formed.

    Raises
    ------
    MergePlanValidationError
        Listing every problem found.

    """
    issues: list[str] = []
    if len(plan.source_repos) < MIN_SOURCES:
        issues.append(
            f"at least {MIN_SOURCES} source repositories are required, "
            f"got {len(plan.source_repos)}"
        )

    seen: set[RepositoryRef] = set()
    for repo in plan.source_repos:
        if repo in seen:
            issues.append(f"source repository {repo} is listed more than once")
        seen.add(repo)

    if plan.target_repo in seen:
        issues.append(f"target repository {plan.target_repo} is also a source")

    if plan.layout is MergeLayout.SEPARATE_FOLDERS:
        owners_by_folder: dict[str, list[RepositoryRef]] = {}
        for repo in dict.fromkeys(plan.source_repos):
            owners_by_folder.setdefault(repo.name, []).append(repo)
        for folder, repos in owners_by_folder.items():
            if len(repos) > 1:
                slugs = ", ".join(repo.slug for repo in repos)
                issues.append(
                    f"sources {slugs} would all be written to folder {folder}/"
                )

    if not plan.target_branch.strip():
        issues.append("target branch must not be blank")

    if plan.conservative_delay_seconds < 0:
        issues.append(
            "conservative_delay_seconds must not be negative, "
            f"got {plan.conservative_delay_seconds}"
        )

    if issues:
        raise MergePlanValidationError(issues)
    return plan


def plan_from_document(document: PlanDocument) -> MergePlan:
    """Convert a decoded plan file into a validated :class:`MergePlan`."""
    issues: list[str] = []
    sources: list[RepositoryRef] = []
    for slug in document.sources:
        try:
            sources.append(RepositoryRef.parse(slug))
        except ValueError as exc:
            issues.append(f"sources: {exc}")
    try:
        target = RepositoryRef.parse(document.target)
    except ValueError as exc:
        issues.append(f"target: {exc}")
    if issues:
        raise MergePlanValidationError(issues)

    return validate_plan(
        MergePlan(
            source_repos=tuple(sources),
            target_repo=target,
            layout=MergeLayout(document.layout),
            target_branch=document.branch.strip(),
            conservative_mode=document.conservative,
            conservative_delay_seconds=document.conservative_delay_seconds,
            empty_placeholder=document.empty_placeholder,
        )
    )


def load_plan(path: Path | str) -> MergePlan:
    """Parse a YAML plan file using a YAML 1.2 compliant loader."""
    yaml = _yaml()
    path_obj = Path(path)

    try:
        loaded = yaml.load(path_obj.read_text(encoding="utf-8"))
    except (OSError, YAMLError) as exc:
        raise MergePlanValidationError([f"failed to parse YAML: {exc}"]) from exc

    if loaded is None:
        raise MergePlanValidationError(["plan file is empty"])

    try:
        document = msgspec.convert(loaded, type=PlanDocument)
    except msgspec.ValidationError as exc:
        raise MergePlanValidationError([f"schema validation failed: {exc}"]) from exc

    return plan_from_document(document)


def _yaml() -> YAML:
    yaml = YAML(typ="safe")
    yaml.version = YAML_VERSION
    yaml.allow_duplicate_keys = False
    return yaml
