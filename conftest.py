# Ensure tests import the gateway package from this checkout first, even when
# an older copy is installed into the active environment.
import os
import sys

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)
