"""Operations performed on deposits and providers.

Public API:
    Harvest:
        - Harvester: HEAD size check and streamed download
        - DiskBudget: Free-space preflight for a harvest batch

    Validation:
        - ChecksumValidator / compute_file_hash: Streaming digests
        - ClamdscanScanner: Virus scanning via clamdscan

    Protocol:
        - parse_envelope: Deposit envelope parsing
        - DepositTransmitter: Downstream SWORD client
        - Pinger: Provider gateway pings
"""

from plnstage.operations.checksum import ChecksumValidator, compute_file_hash
from plnstage.operations.disk import DiskBudget
from plnstage.operations.envelope import DepositEnvelope, parse_envelope
from plnstage.operations.harvest import Harvester, create_client
from plnstage.operations.notify import LoggingNotifier
from plnstage.operations.paths import FilePaths
from plnstage.operations.ping import Pinger
from plnstage.operations.scan import ClamdscanScanner
from plnstage.operations.transmit import DepositTransmitter

__all__ = [
    "Harvester",
    "create_client",
    "DiskBudget",
    "ChecksumValidator",
    "compute_file_hash",
    "ClamdscanScanner",
    "parse_envelope",
    "DepositEnvelope",
    "DepositTransmitter",
    "Pinger",
    "FilePaths",
    "LoggingNotifier",
]
