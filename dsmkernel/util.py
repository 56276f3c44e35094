# Copyright 2013-2016 Tom Eulenfeld, MIT license
"""
Utility functions for geometry on the spherical earth and bookkeeping.
"""
import collections
import inspect
import math

from decorator import decorator


EARTH_RADIUS = 6371.  #: Earth radius in km
FLATTENING = 1 / 298.257223563  #: Flattening of the GRS80 ellipsoid

HorizontalPosition = collections.namedtuple('HorizontalPosition',
                                            'latitude longitude')
FullPosition = collections.namedtuple('FullPosition',
                                      'latitude longitude radius')

#: angles with sine smaller than this are treated as zero or pi
_SIN_EPS = 1e-12


def geocentric_latitude(latitude):
    """
    Convert geographic (geodetic) latitude in degrees to geocentric latitude.

    :return: geocentric latitude in radians
    """
    lat = math.radians(latitude)
    if abs(abs(latitude) - 90) < 1e-10:
        return lat
    return math.atan((1 - FLATTENING) ** 2 * math.tan(lat))


def _colat_lon(position):
    return (0.5 * math.pi - geocentric_latitude(position[0]),
            math.radians(position[1]))


def _direction(pos1, pos2):
    # sin(d) cos(az), sin(d) sin(az) and cos(d)
    theta1, phi1 = _colat_lon(pos1)
    theta2, phi2 = _colat_lon(pos2)
    dphi = phi2 - phi1
    x = (math.sin(theta1) * math.cos(theta2) -
         math.cos(theta1) * math.sin(theta2) * math.cos(dphi))
    y = math.sin(theta2) * math.sin(dphi)
    z = (math.cos(theta1) * math.cos(theta2) +
         math.sin(theta1) * math.sin(theta2) * math.cos(dphi))
    return x, y, z


def epicentral_distance(pos1, pos2):
    """
    Epicentral distance in radians between two horizontal positions.

    Positions are (latitude, longitude) tuples in degrees. Latitudes are
    converted to geocentric latitudes.
    """
    x, y, z = _direction(pos1, pos2)
    return math.atan2(math.hypot(x, y), z)


def azimuth(pos_from, pos_to):
    """
    Azimuth in radians of ``pos_to`` seen from ``pos_from``.

    The azimuth is measured clockwise from north and lies in [0, 2pi).
    If the two positions coincide or are antipodal the azimuth is not
    defined and 0 is returned.
    """
    x, y, _ = _direction(pos_from, pos_to)
    if math.hypot(x, y) < _SIN_EPS:
        return 0.
    az = math.atan2(y, x)
    return az if az >= 0 else az + 2 * math.pi


def find_npts(tlen, sampling_hz):
    """
    Return the smallest power of two which is at least ``tlen * sampling_hz``.
    """
    n = tlen * sampling_hz
    npts = 1
    while npts < n:
        npts *= 2
    return npts


def is_power_of_two(n):
    n = int(n)
    return n > 0 and n & (n - 1) == 0


@decorator
def _add_processing_info(func, *args, **kwargs):
    from dsmkernel import __version__
    args_ = inspect.getcallargs(func, *args, **kwargs)
    args_.pop('self', None)
    kw = args_.pop('kwargs', {})
    kw.update(args_)
    info = 'dsmkernel {version}: {function}(%s)'.format(
        version=__version__, function=func.__name__)
    arguments = ['%s=%s' % (k, repr(v)) if not isinstance(v, str) else
                 "%s='%s'" % (k, v) for k, v in kw.items()]
    info = info % '::'.join(sorted(arguments))
    stream = func(*args, **kwargs)
    for tr in stream:
        tr._internal_add_processing_info(info)
    return stream
