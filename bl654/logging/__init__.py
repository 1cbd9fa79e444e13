"""Traffic logging for the BL654 interface.

Records raw lines exchanged with the module, port events and errors for
debugging and troubleshooting.
"""

from bl654.logging.log_models import LogEntry
from bl654.logging.file_handler import FileHandler
from bl654.logging.communication_logger import CommunicationLogger

__all__ = ['LogEntry', 'FileHandler', 'CommunicationLogger']
