"""UTC timezone enforcement.

Block timestamps are stored as UTC; importing this module pins the process
timezone so naive datetime handling never drifts with the host locale.
"""

import os

os.environ["TZ"] = "UTC"
