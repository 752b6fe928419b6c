# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Allow ``python -m kahla_notify``."""

import sys

from kahla_notify.service import main


if __name__ == "__main__":
    sys.exit(main())
