from typing import TypeAlias

import numpy as np

Array: TypeAlias = np.ndarray
