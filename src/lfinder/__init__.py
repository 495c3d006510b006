from .errors import ScanSetupError, TargetNotFound, HardlinkUnsupported
from .config import ScanConfig, ScanMode
from .settings import ScanSettings
from .identity import InodeKey, InodeResolver, InodeUnavailable, TargetIdentity
from .classifier import LinkClassifier, LinkKind, LinkMatch
from .utils.processor import Processor
from .scanner import LinkScanner, ScanOutcome, ScanState
