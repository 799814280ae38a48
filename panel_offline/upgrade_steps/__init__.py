from .step_10_preflight import PreflightStep, UpgradeError
from .step_20_backup import BackupStep
from .step_30_stop_services import StopServicesStep
from .step_40_replace_artifacts import ReplaceArtifactsStep
from .step_50_rewrite_config import RewriteConfigStep
from .step_60_migrate_version import MigrateVersionStep
from .step_70_install_units import InstallUnitsStep
from .step_80_start_services import StartServicesStep
from .step_90_verify import VerifyStep

__all__ = [
    "UpgradeError",
    "PreflightStep",
    "BackupStep",
    "StopServicesStep",
    "ReplaceArtifactsStep",
    "RewriteConfigStep",
    "MigrateVersionStep",
    "InstallUnitsStep",
    "StartServicesStep",
    "VerifyStep",
]
