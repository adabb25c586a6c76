import os
from pathlib import Path

# Site
ILIAS_URL = os.environ.get('ILIAS_URL', 'https://ilias.studium.kit.edu/')
PERSONAL_DESKTOP_PATH = 'ilias.php?baseClass=ilPersonalDesktopGUI&cmd=jumpToSelectedItems'
USER_AGENT = os.environ.get('SYNC_USER_AGENT', 'ilias-mirror/0.1.0')

# Crawl defaults (overridable per run)
SYNC_DEFAULT_JOBS = int(os.environ.get('SYNC_DEFAULT_JOBS', 1))
SYNC_DEFAULT_RATE = float(os.environ.get('SYNC_DEFAULT_RATE', 8))
HTTP2_RETRY_LIMIT = int(os.environ.get('SYNC_HTTP2_RETRY_LIMIT', 3))

# Local files inside the sync target
IGNORE_FILE_NAME = os.environ.get('SYNC_IGNORE_FILE_NAME', '.iliasignore')
SESSION_FILE_NAME = os.environ.get('SYNC_SESSION_FILE_NAME', '.iliassession')
DEFAULT_OUTPUT_DIR = Path(os.environ.get('SYNC_OUTPUT_DIR', '.'))

# Logging
SYNC_LOG_LEVEL = os.environ.get('SYNC_LOG_LEVEL', 'WARNING').upper()
LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'
