"""
Client for the remote pairwise alignment service.

A job is submitted once and then polled until the service reports a final
status, the deadline passes, or the caller cancels:

    PENDING -> COMPLETE | ERROR | TIMED_OUT | CANCELLED

The service returns an RMSD and a column-major 4x4 transform that maps the
hit onto the query; both are handed back unchanged.
"""

from __future__ import annotations

import enum
import json
import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np
import requests

from .config import ViewerConfig
from .molecule_data import as_transform

logger = logging.getLogger(__name__)


class AlignmentError(RuntimeError):
    """The alignment service rejected the job or returned an unusable answer."""


class AlignmentTimeout(AlignmentError):
    pass


class AlignmentCancelled(AlignmentError):
    pass


# --- Request shapes ----------------------------------------------------------


@dataclass(frozen=True)
class ResidueIdentifier:
    label_asym_id: str
    label_seq_id: int
    struct_oper_id: Optional[str] = None

    def to_wire(self) -> dict[str, Any]:
        out: dict[str, Any] = {"asym_id": self.label_asym_id, "seq_id": self.label_seq_id}
        if self.struct_oper_id:
            out["struct_oper_id"] = self.struct_oper_id
        return out


@dataclass(frozen=True)
class MotifSelection:
    entry_id: str
    residue_ids: tuple[ResidueIdentifier, ...]

    def to_wire(self) -> dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "residue_ids": [r.to_wire() for r in self.residue_ids],
        }


def build_pairwise_request(query: MotifSelection, hit: MotifSelection) -> dict[str, Any]:
    return {
        "options": {"return_sequence_data": False},
        "context": {
            "mode": "pairwise",
            "method": {"name": "qcp", "parameters": {"atom_pairing_strategy": "all"}},
            "structures": [query.to_wire(), hit.to_wire()],
        },
    }


# --- Job state ---------------------------------------------------------------


class JobStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"
    TIMED_OUT = "TIMED_OUT"
    CANCELLED = "CANCELLED"

    @property
    def is_final(self) -> bool:
        return self is not JobStatus.PENDING


@dataclass(frozen=True)
class AlignmentResult:
    rmsd: float
    matrix: tuple[float, ...]  # 16 values, column-major, as sent by the service

    @property
    def transform(self) -> np.ndarray:
        """Row-major 4x4 array of `matrix`."""
        return as_transform(self.matrix)


@dataclass
class AlignmentJob:
    uuid: str
    status: JobStatus = JobStatus.PENDING
    polls: int = 0
    message: Optional[str] = None
    result: Optional[AlignmentResult] = None
    history: list[JobStatus] = field(default_factory=lambda: [JobStatus.PENDING])

    def advance(self, status: JobStatus, message: Optional[str] = None) -> None:
        if self.status.is_final:
            raise AlignmentError(
                f"Job {self.uuid} is already {self.status.value}; cannot move to {status.value}"
            )
        if status is JobStatus.PENDING:
            return
        self.status = status
        self.message = message
        self.history.append(status)


# --- Client ------------------------------------------------------------------


class AlignmentClient:
    """
    Submit and poll pairwise alignment jobs.

    `session` is any object with ``post`` and ``get`` like `requests.Session`;
    `clock` returns monotonic seconds.
    """

    def __init__(
        self,
        config: Optional[ViewerConfig] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config if config is not None else ViewerConfig()
        self.session = session if session is not None else requests.Session()
        self.clock = clock
        self.base_url = self.config.alignment_url.rstrip("/") + "/"

    def submit(self, request: Mapping[str, Any]) -> AlignmentJob:
        url = self.base_url + "structures/submit"
        try:
            r = self.session.post(
                url,
                files={"query": (None, json.dumps(request))},
                timeout=self.config.request_timeout,
            )
        except requests.RequestException as e:
            raise AlignmentError(f"Failed to submit the job: {e}") from e
        if r.status_code != 200:
            raise AlignmentError(f"Failed to submit the job (HTTP {r.status_code})")
        uuid = r.text.strip()
        if not uuid:
            raise AlignmentError("Alignment service returned an empty job id")
        logger.info("Submitted alignment job %s", uuid)
        return AlignmentJob(uuid=uuid)

    def poll(self, job: AlignmentJob) -> AlignmentJob:
        """Query the service once and advance `job` accordingly."""
        url = self.base_url + "structures/results"
        try:
            r = self.session.get(url, params={"uuid": job.uuid}, timeout=self.config.request_timeout)
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as e:
            raise AlignmentError(f"Failed to poll job {job.uuid}: {e}") from e

        job.polls += 1
        info = data.get("info") or {}
        status = info.get("status")
        if status == "COMPLETE":
            job.result = _parse_result(job.uuid, data)
            job.advance(JobStatus.COMPLETE)
        elif status == "ERROR":
            job.advance(JobStatus.ERROR, info.get("message"))
        else:
            logger.debug("Job %s is %s after %d polls", job.uuid, status, job.polls)
        return job

    def wait(self, job: AlignmentJob, cancel: Optional[threading.Event] = None) -> AlignmentResult:
        """
        Poll `job` every `poll_interval` seconds until it is final.

        A `poll_timeout` of 0 polls forever. Setting `cancel` stops polling at
        the next interval.
        """
        cancel = cancel if cancel is not None else threading.Event()
        interval = self.config.poll_interval
        timeout = self.config.poll_timeout
        start = self.clock()
        while True:
            if cancel.is_set():
                job.advance(JobStatus.CANCELLED)
                raise AlignmentCancelled(f"Alignment job {job.uuid} was cancelled")
            self.poll(job)
            if job.status is JobStatus.COMPLETE:
                return job.result
            if job.status is JobStatus.ERROR:
                raise AlignmentError(f"Failed to complete the job. Error: {job.message}")
            if timeout and self.clock() - start > timeout:
                job.advance(JobStatus.TIMED_OUT)
                raise AlignmentTimeout(
                    f"Alignment job {job.uuid} not done after {job.polls} polls ({timeout} s)"
                )
            cancel.wait(interval)

    def align(
        self,
        query: MotifSelection,
        hit: MotifSelection,
        cancel: Optional[threading.Event] = None,
    ) -> AlignmentResult:
        job = self.submit(build_pairwise_request(query, hit))
        return self.wait(job, cancel)


def _parse_result(uuid: str, data: Mapping[str, Any]) -> AlignmentResult:
    try:
        first = data["results"][0]
        rmsd = float(first["alignment_summary"]["scores"][0]["value"])
        matrix = tuple(float(v) for v in first["blocks"][0]["transformations"][0])
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise AlignmentError(f"Malformed result for job {uuid}: {e!r}") from e
    if len(matrix) != 16:
        raise AlignmentError(f"Expected 16 transform values for job {uuid}, got {len(matrix)}")
    return AlignmentResult(rmsd=rmsd, matrix=matrix)
