from .base import Base
from .user import User
from .asesor import Asesor
from .banco import Banco
from .sale import Sale
from .payment_installment import PaymentInstallment
from .egreso import Egreso
from .prospecto import Prospecto
from .seguimiento_config import SeguimientoConfig
from .upload_history import UploadHistory
from .cashea import CasheaAutomationConfig, CasheaAutomaticDownload
from .job_run import JobRun
from .status_history import StatusHistory
from .sale_snapshot import SaleSnapshot
from .sequence_counter import SequenceCounter

__all__ = [
    "Base", "User", "Asesor", "Banco", "Sale", "PaymentInstallment", "Egreso", "Prospecto",
    "SeguimientoConfig", "UploadHistory", "CasheaAutomationConfig", "CasheaAutomaticDownload",
    "JobRun", "StatusHistory", "SaleSnapshot", "SequenceCounter",
]
