# Copyright 2013-2019 Tom Eulenfeld, MIT license
"""
Elastic weighting of strain tensors and the background structure model.

The stiffness tensor of a transversely isotropic medium with vertical
symmetry axis (index 0 is the radial direction) has the Voigt notation::

    C     F     F
    F     A     A-2N
    F     A-2N  A
                      N
                            L
                                  L

The partial derivative with respect to one parameter is computed by
contracting the strain fields with the derivative ``W[j, q, r, s]`` of the
stiffness tensor with respect to this parameter.
"""
from importlib.resources import files

import numpy as np
from obspy.core.util import AttribDict


#: all variables for which partial derivatives can be calculated
VARIABLE_TYPES = ('RHO', 'LAMBDA', 'MU', 'KAPPA', 'LAMBDA2MU',
                  'A', 'C', 'F', 'L', 'N', 'Q')

_VOIGT = ((0, 5, 4),
          (5, 1, 3),
          (4, 3, 2))


def voigt(i, j):
    """Voigt index (0..5) of the tensor index pair (i, j)"""
    return _VOIGT[i][j]


def ti_modulus(m, n):
    """Name of the TI modulus at Voigt position (m, n)"""
    if m > n:
        m, n = n, m
    if m == n == 0:
        return 'C'
    elif m == n and m in (1, 2):
        return 'A'
    elif m == 0 and n in (1, 2):
        return 'F'
    elif (m, n) == (1, 2):
        return 'A_2N'
    elif m == n == 3:
        return 'N'
    elif m == n and m in (4, 5):
        return 'L'
    return None


def iso_modulus(m, n):
    """Name of the isotropic modulus at Voigt position (m, n)"""
    if m < 3 and n < 3:
        return 'LAMBDA2MU' if m == n else 'LAMBDA'
    elif m == n:
        return 'MU'
    return None


# derivative of the moduli in the tensor with respect to the variable
_TI_FACTORS = {
    'A': {'A': 1., 'A_2N': 1.},
    'C': {'C': 1.},
    'F': {'F': 1.},
    'L': {'L': 1.},
    'N': {'A_2N': -2., 'N': 1.}}

# chain rule for kappa and lambda + 2 mu, e.g.
# du/dkappa = du/dlambda + 1.5 du/dmu
_ISO_FACTORS = {
    'MU': {'MU': 1., 'LAMBDA2MU': 2.},
    'LAMBDA': {'LAMBDA': 1., 'LAMBDA2MU': 1.},
    'KAPPA': {'LAMBDA': 1., 'LAMBDA2MU': 4., 'MU': 1.5},
    'LAMBDA2MU': {'LAMBDA': 1., 'LAMBDA2MU': 2., 'MU': 0.5}}

_WEIGHTING_CACHE = {}


def weighting_factor(variable):
    """
    Return weighting factors for the contraction of strain tensors.

    :param variable: one of 'A', 'C', 'F', 'L', 'N', 'MU', 'LAMBDA', 'KAPPA',
        'LAMBDA2MU'
    :return: array of shape (3, 3, 3, 3)
    """
    variable = variable.upper()
    if variable in _WEIGHTING_CACHE:
        return _WEIGHTING_CACHE[variable]
    if variable in _TI_FACTORS:
        factors, modulus = _TI_FACTORS[variable], ti_modulus
    elif variable in _ISO_FACTORS:
        factors, modulus = _ISO_FACTORS[variable], iso_modulus
    else:
        msg = 'no weighting factors for variable %s' % variable
        raise ValueError(msg)
    w = np.zeros((3, 3, 3, 3))
    for index in np.ndindex(*w.shape):
        j, q, r, s = index
        name = modulus(voigt(j, q), voigt(r, s))
        w[index] = factors.get(name, 0.)
    w.flags.writeable = False
    _WEIGHTING_CACHE[variable] = w
    return w


_STRUCTURE_CACHE = {}


def load_structure(fname='prem'):
    """
    Load layered structure model from file.

    :param fname: path to model file or 'prem'
    :return: `StructureModel` instance

    Each line of the file describes one layer with 16 columns: minimal and
    maximal radius in km, 4 polynomial coefficients for density, P velocity
    and S velocity in the normalized radius ``r / 6371``, Qmu and Qkappa.
    """
    try:
        return _STRUCTURE_CACHE[fname]
    except KeyError:
        pass
    fname_key = fname
    if fname == 'prem':
        fname = str(files('dsmkernel').joinpath('data', 'prem.dat'))
    values = np.loadtxt(fname, ndmin=2)
    if values.shape[1] != 16:
        raise ValueError('structure file needs 16 columns')
    model = StructureModel(values[:, :2], values[:, 2:6], values[:, 6:10],
                           values[:, 10:14], values[:, 14], values[:, 15])
    _STRUCTURE_CACHE[fname_key] = model
    return model


class StructureModel(object):

    """
    Isotropic 1D structure of the earth described by polynomials.

    :param bounds: array of shape (nlayer, 2) with minimal and maximal
        radius of each layer in km
    :param rho, vp, vs: polynomial coefficients (increasing order) of density
        and velocities in the normalized radius, shape (nlayer, 4)
    :param qmu, qkappa: quality factors of each layer, 0 means no attenuation
    :param radius: radius used for normalization
    """

    def __init__(self, bounds, rho, vp, vs, qmu, qkappa, radius=6371.):
        self.bounds = np.asarray(bounds)
        self.rho = np.asarray(rho)
        self.vp = np.asarray(vp)
        self.vs = np.asarray(vs)
        self.qmu = np.asarray(qmu)
        self.qkappa = np.asarray(qkappa)
        self.radius = radius

    def _layer(self, r):
        for i, (rmin, rmax) in enumerate(self.bounds):
            if rmin <= r < rmax:
                return i
        if r == self.bounds[-1, 1]:
            return len(self.bounds) - 1
        raise ValueError('radius %s outside of model' % r)

    def medium_at(self, r):
        """
        Return elastic properties at radius r (km).

        :return: AttribDict with rho, vp, vs, qmu, qkappa and the moduli
            mu, lambda_, kappa, A, C, F, L, N
        """
        i = self._layer(r)
        x = r / self.radius
        powers = x ** np.arange(4)
        m = AttribDict()
        m.rho = np.dot(self.rho[i], powers)
        m.vp = np.dot(self.vp[i], powers)
        m.vs = np.dot(self.vs[i], powers)
        m.qmu = self.qmu[i]
        m.qkappa = self.qkappa[i]
        m.mu = m.rho * m.vs ** 2
        m.lambda_ = m.rho * m.vp ** 2 - 2 * m.mu
        m.kappa = m.lambda_ + 2. / 3 * m.mu
        m.A = m.C = m.rho * m.vp ** 2
        m.L = m.N = m.mu
        m.F = m.A - 2 * m.L
        return m

    def mu(self, r):
        return self.medium_at(r).mu
