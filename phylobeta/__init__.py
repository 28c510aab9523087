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

__author__ = 'phylobeta developers'
__copyright__ = 'Copyright 2025'
__credits__ = ['phylobeta developers']
__description__ = 'Standardized effect sizes of phylogenetic beta diversity against null models'
__license__ = 'GPL3'
__maintainer__ = 'phylobeta developers'
__python_requires__ = '>=3.8'
__status__ = 'development'
__title__ = 'phylobeta'
__url__ = 'https://github.com/phylobeta/phylobeta'
__version__ = '0.0.1'

from phylobeta.comdist import METRICS, pairwise_distance
from phylobeta.null_models import NULL_MODELS, NullModel, generate, get_null_model
from phylobeta.pantry import Community, TaxonDistances
from phylobeta.ses import SESResult, ses_comdist, ses_comdistnt
from phylobeta.significance import bh_qvalues, bootstrap, permtest
