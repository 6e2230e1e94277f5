"""Candidate validation: existence, dependency signature, fork exclusion.

Checks run in that order and stop at the first negative result:

1. Existence -- the registry already has the canonical URL. The candidate
   is a duplicate-skip and the external index is never called.
2. Signature -- the manifest must declare the signature package in its
   runtime, development or peer dependencies.
3. Fork -- forks are excluded so only the original repository is indexed.
"""

from __future__ import annotations

import logging

from scout.errors import FetchFailure, ValidationRejection
from scout.models.candidate import Candidate, Manifest, ValidatedCandidate
from scout.registry.models import RegistryEntry
from scout.registry.store import RegistrySession

logger = logging.getLogger(__name__)

NO_SIGNATURE = "no signature"
IS_FORK = "is a fork"


class AlreadyRegistered(Exception):
    """Raised by the existence check; carries the existing entry."""

    def __init__(self, entry: RegistryEntry) -> None:
        super().__init__(entry.repository_url)
        self.entry = entry


class CandidateValidator:
    """Runs the three checks for one candidate at a time."""

    def __init__(
        self,
        index,
        registry: RegistrySession,
        signature_package: str,
        manifest_path: str = "package.json",
    ):
        self.index = index
        self.registry = registry
        self.signature_package = signature_package
        self.manifest_path = manifest_path

    def validate(self, candidate: Candidate, force: bool = False) -> ValidatedCandidate:
        """Validate *candidate* and return it with its fetched data.

        With *force* the existence check is skipped (administrative
        reprocessing of an already registered repository).

        Raises:
            AlreadyRegistered: The canonical URL is already in the registry.
            FetchFailure: The manifest or metadata could not be obtained.
            ValidationRejection: No signature dependency, or a fork.
        """
        if not force:
            self.check_not_registered(candidate)
        manifest = self.check_signature(candidate)
        metadata = self.index.get_repository(candidate.owner, candidate.name)
        if metadata.fork:
            raise ValidationRejection(candidate.url, IS_FORK, metadata.parent_url)
        return ValidatedCandidate(candidate=candidate, manifest=manifest, metadata=metadata)

    def check_not_registered(self, candidate: Candidate) -> None:
        existing = self.registry.find_by_url(candidate.url)
        if existing is not None:
            raise AlreadyRegistered(existing)

    def check_signature(self, candidate: Candidate) -> Manifest:
        raw = self.index.get_file(candidate.owner, candidate.name, self.manifest_path)
        try:
            manifest = Manifest.from_bytes(raw)
        except ValueError as exc:
            raise FetchFailure(candidate.url, f"{self.manifest_path} unparsable: {exc}") from exc

        if not manifest.declares(self.signature_package):
            logger.debug("%s does not depend on %s", candidate.url, self.signature_package)
            raise ValidationRejection(candidate.url, NO_SIGNATURE)
        return manifest
