"""
Shared pytest configuration.

Points the burn-in log directory at a temporary location before any
burnin_kit module configures logging.
"""

import os
import tempfile

os.environ.setdefault('DISKBURNIN_LOG_DIR', tempfile.mkdtemp(prefix='diskburnin-test-log-'))
