# Ensure tests import modules from this service directory first, so
# `import gateway.server` works without installing the package.
import os
import sys

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)
