#!/usr/bin/env python3
###############################################################################
#                                                                             #
#    This program is free software: you can redistribute it and/or modify     #
#    it under the terms of the GNU General Public License as published by     #
#    the Free Software Foundation, either version 3 of the License, or        #
#    (at your option) any later version.                                      #
#                                                                             #
#    This program is distributed in the hope that it will be useful,          #
#    but WITHOUT ANY WARRANTY; without even the implied warranty of           #
#    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the            #
#    GNU General Public License for more details.                             #
#                                                                             #
#    You should have received a copy of the GNU General Public License        #
#    along with this program. If not, see <http://www.gnu.org/licenses/>.     #
#                                                                             #
###############################################################################

import sys

from phylobeta import __author__, __copyright__, __version__
from phylobeta.cli import parse_cli

COMMANDS = {'ses', 'permtest', 'bootstrap'}

def print_help():
    print('''\

  phylobeta v%s

  Main dish:
    ses -> Standardized effect size of between-community MPD or MNTD against a null model.

  Sides:
    permtest  -> Permutation test of within/between group z-values from an SES z-matrix.
    bootstrap -> Bootstrap quantiles and FDR-adjusted tests of group z-values.

  Null models:
    taxa.labels, richness, frequency, sample.pool, phylogeny.pool, independentswap, trialswap

  Use: phylobeta <command> -h for command specific help
    ''' % __version__)


def main():
    if len(sys.argv) == 1:
        print_help()
        sys.exit(0)
    elif sys.argv[1] in {'-v', '--v', '-version', '--version'}:
        print(f"phylobeta: version {__version__} {__copyright__} {__author__}")
        sys.exit(0)
    elif sys.argv[1] in {'-h', '--h', '-help', '--help'}:
        print_help()
        sys.exit(0)
    elif sys.argv[1] not in COMMANDS:
        print(f"program not on the menu, choose from the options listed below ")
        print_help()
        sys.exit(1)
    else:
        parse_cli()


if __name__ == "__main__":
    main()
