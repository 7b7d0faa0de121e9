# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Allow ``python -m s3signer``."""

from s3signer.cli import cli


cli()
