"""
Reference matching shared by both backends.

The process backend feeds ls-remote text through parse_ls_remote(); the
library backend converts the dulwich ref dictionary with refs_from_dulwich().
From there on both run the same matching and resolution rules, so a branch
specification resolves to the same object id whichever backend is active.

Pattern rules:
    - ``*`` matches zero or more characters (``/`` included), ``?`` exactly one
    - matching is anchored on the full reference name
    - a leading ``*/`` namespace wildcard (as in ``*/main``) is dropped
    - patterns not starting with ``refs/`` are qualified with ``refs/heads/``
      and/or ``refs/tags/`` depending on the namespace filters
"""

import logging
import re
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from gitclient.exceptions import (
    AmbiguousReferenceError,
    OperationFailedError,
    ReferenceIntegrityError,
    ReferenceNotFoundError,
)
from gitclient.model import ObjectId

logger = logging.getLogger(__name__)

HEADS = "refs/heads/"
TAGS = "refs/tags/"
PEELED_SUFFIX = "^{}"

# Default remote policy: exact name if configured, else the first remote in
# configuration file order.
FIRST_CONFIGURED = "first-configured"
DEFAULT_REMOTE_POLICY = FIRST_CONFIGURED


def is_wildcard(pattern: str) -> bool:
    return "*" in pattern or "?" in pattern


def glob_to_regex(pattern: str) -> "re.Pattern[str]":
    """Compile a ``*``/``?`` glob into an anchored regular expression."""
    parts = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("^" + "".join(parts) + "$", re.DOTALL)


def strip_namespace_wildcard(pattern: str) -> str:
    while pattern.startswith("*/"):
        pattern = pattern[2:]
    return pattern


def namespaces(heads_only: bool, tags_only: bool) -> Tuple[str, ...]:
    """Namespaces searched for the given filters; neither flag means both."""
    selected = []
    if heads_only:
        selected.append(HEADS)
    if tags_only:
        selected.append(TAGS)
    if not selected:
        selected = [HEADS, TAGS]
    return tuple(selected)


def qualify(pattern: str, search: Sequence[str]) -> List[str]:
    """
    Expand a user pattern into full reference name patterns.

    Args:
        pattern: Branch/tag specification, possibly with wildcards
        search: Namespaces to search (e.g. ``("refs/heads/",)``)

    Returns:
        Patterns to match against full reference names
    """
    pattern = strip_namespace_wildcard(pattern)
    if not pattern:
        return [ns + "*" for ns in search]
    if pattern.startswith("refs/"):
        return [pattern]
    return [ns + pattern for ns in search]


def parse_ls_remote(output: str) -> Dict[str, ObjectId]:
    """
    Parse ``<40-hex><TAB><ref>`` lines.

    Malformed lines and peeled tag entries are skipped. Output that has
    content but not a single parsable line is an error, and so is a
    reference listed twice with different object ids.

    Args:
        output: Raw ls-remote standard output

    Returns:
        Mapping of reference name to object id
    """
    references: Dict[str, ObjectId] = {}
    content = False
    for line in output.splitlines():
        if not line.strip():
            continue
        content = True
        sha, sep, name = line.partition("\t")
        if not sep or not ObjectId.is_valid(sha.strip()):
            logger.debug(f"Skipping unexpected ls-remote line: {line!r}")
            continue
        name = name.strip()
        if not name or name.endswith(PEELED_SUFFIX):
            continue
        object_id = ObjectId.from_string(sha)
        if name in references and references[name] != object_id:
            raise ReferenceIntegrityError(name, [str(references[name]), str(object_id)])
        references[name] = object_id
    if content and not references:
        raise OperationFailedError(f"unexpected ls-remote output: {output.strip()}")
    return references


def parse_symbolic_refs(output: str) -> Dict[str, str]:
    """Parse ``ref: <target><TAB><name>`` lines of ``ls-remote --symref``."""
    symrefs: Dict[str, str] = {}
    for line in output.splitlines():
        if not line.startswith("ref:"):
            continue
        target, sep, name = line[len("ref:") :].strip().partition("\t")
        if sep and name.strip():
            symrefs[name.strip()] = target.strip()
    return symrefs


def refs_from_dulwich(refs: Mapping[bytes, bytes]) -> Dict[str, ObjectId]:
    references: Dict[str, ObjectId] = {}
    for name, sha in refs.items():
        ref_name = name.decode("utf-8")
        if ref_name.endswith(PEELED_SUFFIX) or sha is None:
            continue
        references[ref_name] = ObjectId.from_bytes(sha)
    return references


def match_references(
    references: Mapping[str, ObjectId],
    pattern: Optional[str],
    heads_only: bool = False,
    tags_only: bool = False,
) -> Dict[str, ObjectId]:
    """
    Filter a reference listing by namespace and then by pattern.

    Returns:
        Matching subset; empty when nothing matches
    """
    search = namespaces(heads_only, tags_only)
    compiled = [glob_to_regex(p) for p in qualify(pattern or "", search)]
    matches = {}
    for name, object_id in references.items():
        if not name.startswith(search):
            continue
        if any(regex.match(name) for regex in compiled):
            matches[name] = object_id
    return matches


def resolve_single(
    references: Mapping[str, ObjectId], pattern: str, location: str = ""
) -> ObjectId:
    """
    Resolve a branch specification to exactly one object id.

    Only ``refs/heads/`` is searched. Several matches pointing at the same
    object are fine; distinct objects are an error.

    Raises:
        ReferenceNotFoundError: nothing matched
        ReferenceIntegrityError: a concrete name matched distinct objects
        AmbiguousReferenceError: a wildcard matched distinct objects
    """
    matches = match_references(references, pattern, heads_only=True)
    if not matches:
        raise ReferenceNotFoundError(pattern, location)
    distinct = {object_id for object_id in matches.values()}
    if len(distinct) == 1:
        return next(iter(distinct))
    candidates = sorted(matches)
    if is_wildcard(strip_namespace_wildcard(pattern)):
        raise AmbiguousReferenceError(pattern, candidates)
    raise ReferenceIntegrityError(pattern, candidates)


def choose_default_remote(requested: str, configured: Iterable[str]) -> Optional[str]:
    """
    Pick the remote to use for a requested name.

    Args:
        requested: Name the caller asked for
        configured: Remote names in configuration file order

    Returns:
        The requested name when configured, else the first configured
        remote, else None
    """
    remotes = list(configured)
    if requested in remotes:
        return requested
    if not remotes:
        return None
    logger.debug(
        f"Remote '{requested}' not configured, using '{remotes[0]}' ({DEFAULT_REMOTE_POLICY})"
    )
    return remotes[0]
