# Copyright 2013-2016 Tom Eulenfeld, MIT license
"""
Reading and writing of binary spectral files of the DSM solver.

A spectral file holds the wavefield in frequency domain at one or several
perturbation points (radii). The file type is determined by a tag in the
header. Catalog types store the azimuthal dependence of the wavefield as
coefficients of a truncated Fourier series which are evaluated at the
azimuth ``phi`` while reading.

Layout of the big-endian binary file::

    tlen (f8), np (i4), nbody (i4), tag (i4), omegai (f8),
    receiver latitude, longitude (2 f8),
    source position (2 or 3 f8),
    radii (nbody f8, not for synthetics),
    for each frequency step (0 or 1 .. np) and each body:
        ip (i4), channel data (f8 pairs of real and imaginary part)
"""
import collections
import io
import logging
import os.path
import struct

import numpy as np
from obspy.core.util import AttribDict

from dsmkernel.spectrum import ConsistencyError, SpcBody
from dsmkernel.util import EARTH_RADIUS, FullPosition, HorizontalPosition


log = logging.getLogger(__name__)


class SpcFormatError(ValueError):
    """Malformed header, unknown file type or malformed records."""
    pass


class SpcTruncatedError(SpcFormatError, EOFError):
    """Premature end of the binary stream."""
    pass


#: name, header tag, number of channels, number of doubles of the source
#: position, azimuthal orders of catalog types, channels which are zero and
#: not stored, are radii stored
SpcType = collections.namedtuple(
    'SpcType', 'name tag nelement nsource orders zero_channels has_radii')

_TYPES = [
    SpcType('SYNTHETIC', 3, 3, 3, None, (), False),
    SpcType('UF', 4, 3, 3, None, (), True),
    SpcType('UB', 5, 9, 2, None, (), True),
    SpcType('PBPSVCAT', 7, 27, 2, (-1, 0, 1), (), True),
    SpcType('PBSHCAT', 8, 27, 2, (-1, 1), tuple(range(9)), True),
    SpcType('PF', 9, 9, 3, None, (), True),
    SpcType('PFSHCAT', 10, 9, 3, (-2, -1, 1, 2), (), True),
    SpcType('PFPSVCAT', 12, 9, 3, (-2, -1, 0, 1, 2), (), True),
    SpcType('PB', 27, 27, 2, None, (), True)]

#: 1D partial derivative types, the tag in the header is 0
PARTIAL_VARIABLES = ('RHO', 'LAMBDA', 'MU', 'KAPPA', 'LAMBDA2MU',
                     'A', 'C', 'F', 'L', 'N', 'Q')
_TYPES.extend(SpcType(v + '1D', 0, 3, 3, None, (), True)
              for v in PARTIAL_VARIABLES)

SPC_TYPES = {t.name: t for t in _TYPES}
_TAGS = {t.tag: t for t in _TYPES if t.tag != 0}

_MODES = ('PSV', 'SH')


def partial_type(variable):
    """Return the 1D partial `SpcType` of a variable, e.g. 'MU' -> MU1D"""
    return SPC_TYPES[variable.upper() + '1D']


def parse_spc_filename(fname):
    """
    Parse the name of a spectral file.

    Supported names are ``Receiver.Source.MODE.spc`` for synthetics and
    ``Receiver.Source.TYPE.x.y.MODE.spc`` for all other types, where MODE is
    one of PSV or SH.

    :return: AttribDict with entries receiver_id, source_id, spc_type, x, y
        and mode
    """
    name = os.path.basename(fname)
    parts = name.split('.')
    if parts[-1] != 'spc' or len(parts) not in (4, 7):
        raise ValueError('Invalid spectral file name: %s' % name)
    if parts[-2] not in _MODES:
        raise ValueError('Invalid mode in spectral file name: %s' % name)
    ret = AttribDict()
    ret.receiver_id = parts[0]
    ret.source_id = parts[1]
    ret.mode = parts[-2]
    if len(parts) == 4:
        ret.spc_type = SPC_TYPES['SYNTHETIC']
        ret.x = ret.y = None
    else:
        try:
            ret.spc_type = SPC_TYPES[parts[2]]
        except KeyError:
            raise ValueError('Unknown type in spectral file name: %s' % name)
        ret.x, ret.y = parts[3], parts[4]
    return ret


def spc_filename(receiver_id, source_id, mode, spc_type='SYNTHETIC',
                 x=None, y=None):
    """Return name of a spectral file, inverse of `parse_spc_filename`."""
    if not isinstance(spc_type, str):
        spc_type = spc_type.name
    if spc_type == 'SYNTHETIC':
        parts = (receiver_id, source_id, mode, 'spc')
    else:
        parts = (receiver_id, source_id, spc_type, x or 'x', y or 'y', mode,
                 'spc')
    return '.'.join(parts)


class SpcFile(object):

    """
    Spectral file with header information and one `SpcBody` per radius.

    Instances are created by `read_spc` or are synthesized from partial
    derivative calculations. They are not changed after creation, with the
    exception of `set_body` used while synthesizing.
    """

    def __init__(self, tlen, nfreq, omegai, spc_type, body_r,
                 receiver_position, source_position, bodies=None,
                 receiver_id=None, source_id=None, mode=None, phi=0.,
                 fname=None):
        self.tlen = tlen
        self.np = nfreq
        self.omegai = omegai
        self.spc_type = spc_type
        self.body_r = np.asarray(body_r, dtype=float)
        self.receiver_position = receiver_position
        self.source_position = source_position
        if bodies is None:
            bodies = [SpcBody(spc_type.nelement, nfreq)
                      for _ in range(len(self.body_r))]
        self.bodies = bodies
        self.receiver_id = receiver_id
        self.source_id = source_id
        self.mode = mode
        self.phi = phi
        self.fname = fname

    @property
    def nbody(self):
        return len(self.bodies)

    @property
    def nelement(self):
        return self.spc_type.nelement

    def __repr__(self):
        return 'SpcFile(%s)' % (self.fname or self.spc_type.name)

    def __str__(self):
        lines = ['%s %s file' % (self.fname or 'synthesized',
                                 self.spc_type.name),
                 'source %s (%s), receiver %s (%s)' % (
                     self.source_id, self.source_position,
                     self.receiver_id, self.receiver_position),
                 'tlen=%s np=%d omegai=%s nbody=%d' % (
                     self.tlen, self.np, self.omegai, self.nbody)]
        if len(self.body_r) > 0:
            lines.append('radii: ' + ' '.join('%g' % r for r in self.body_r))
        return '\n'.join(lines)

    @property
    def identity(self):
        return self.fname or '%s.%s.%s' % (self.receiver_id, self.source_id,
                                           self.spc_type.name)

    def set_body(self, i, body):
        """Replace body with index i."""
        if body.nelement != self.nelement or body.np != self.np:
            msg = 'body %r does not fit into %r' % (body, self)
            raise ConsistencyError(msg)
        self.bodies[i] = body


def combine(spc1, spc2):
    """
    Sum two spectral files body by body, e.g. PSV and SH parts.

    :return: new `SpcFile` with the header of the first file
    """
    if spc1.np != spc2.np or spc1.nbody != spc2.nbody:
        msg = 'can not combine %r and %r: different np or nbody'
        raise ConsistencyError(msg % (spc1, spc2))
    if not np.array_equal(spc1.body_r, spc2.body_r):
        msg = 'can not combine %r and %r: different radii'
        raise ConsistencyError(msg % (spc1, spc2))
    bodies = [b1.copy().add(b2) for b1, b2 in zip(spc1.bodies, spc2.bodies)]
    return SpcFile(spc1.tlen, spc1.np, spc1.omegai, spc1.spc_type,
                   spc1.body_r, spc1.receiver_position,
                   spc1.source_position, bodies=bodies,
                   receiver_id=spc1.receiver_id, source_id=spc1.source_id,
                   mode=None, phi=spc1.phi)


def _unpack(fmt, buf, offset, fname):
    size = struct.calcsize(fmt)
    if offset + size > len(buf):
        raise SpcTruncatedError('%s: unexpected end of header' % fname)
    return struct.unpack_from(fmt, buf, offset), offset + size


def _reconstruct(coeffs, orders, phi):
    """Evaluate azimuthal order coefficients at azimuth phi."""
    phase = np.exp(1j * np.array(orders) * phi)
    return np.sum(coeffs * phase, axis=-1)


def read_spc(fname, phi=0., receiver_position=None, source_position=None,
             spc_type=None):
    """
    Read a binary spectral file.

    :param fname: file name or binary file-like object
    :param phi: azimuth in radians at which catalog files are evaluated
    :param receiver_position: use this receiver position instead of the
        position stored in the file
    :param source_position: use this source position instead of the
        position stored in the file
    :param spc_type: `SpcType` or its name, only needed for partial files
        with tag 0 if the type can not be determined from the file name
    :return: `SpcFile`
    """
    meta = None
    if hasattr(fname, 'read'):
        buf = fname.read()
        fname = getattr(fname, 'name', None)
    else:
        with open(fname, 'rb') as f:
            buf = f.read()
    if fname is not None:
        try:
            meta = parse_spc_filename(fname)
        except ValueError:
            log.debug('could not parse file name %s', fname)
    label = fname or '<stream>'
    (tlen, nfreq, nbody, tag), offset = _unpack('>diii', buf, 0, label)
    if tag == 0:
        if spc_type is None and meta is not None:
            spc_type = meta.spc_type
        if isinstance(spc_type, str):
            spc_type = SPC_TYPES[spc_type]
        if spc_type is None or spc_type.tag != 0:
            msg = '%s: tag 0 needs a 1D partial type, got %s'
            raise SpcFormatError(msg % (label, spc_type and spc_type.name))
    else:
        try:
            spc_type = _TAGS[tag]
        except KeyError:
            raise SpcFormatError('%s: unknown file type tag %d' % (label, tag))
    if nfreq < 0 or nbody < 0:
        msg = '%s: invalid header np=%d nbody=%d'
        raise SpcFormatError(msg % (label, nfreq, nbody))
    (omegai, lat, lon), offset = _unpack('>ddd', buf, offset, label)
    if receiver_position is None:
        receiver_position = (lat, lon)
    receiver_position = HorizontalPosition(*receiver_position[:2])
    fmt = '>' + 'd' * spc_type.nsource
    src, offset = _unpack(fmt, buf, offset, label)
    if source_position is None:
        source_position = src
    if len(source_position) == 2:
        source_position = tuple(source_position) + (EARTH_RADIUS,)
    source_position = FullPosition(*source_position)
    if spc_type.nsource == 2 and source_position.radius != EARTH_RADIUS:
        msg = '%s: source of backward file has to be at the surface'
        raise SpcFormatError(msg % label)
    if spc_type.has_radii:
        body_r, offset = _unpack('>' + 'd' * nbody, buf, offset, label)
    else:
        body_r = np.zeros(nbody)
    header = np.concatenate([(tlen, omegai, lat, lon), src, body_r])
    if np.any(np.isnan(header)):
        raise ConsistencyError('%s: NaN in header' % label)

    nstored = spc_type.nelement - len(spc_type.zero_channels)
    norders = len(spc_type.orders) if spc_type.orders else 1
    dtype = np.dtype([('ip', '>i4'), ('u', '>f8', (2 * nstored * norders,))])
    blocksize = nbody * dtype.itemsize
    nbytes = len(buf) - offset
    if nbody == 0:
        nstep = 0
    elif nbytes in (nfreq * blocksize, (nfreq + 1) * blocksize):
        nstep = nbytes // blocksize
    elif nbytes < (nfreq + 1) * blocksize:
        expected = nfreq * blocksize
        if nbytes > expected:
            expected += blocksize
        msg = '%s: unexpected end of file, %d bytes missing'
        raise SpcTruncatedError(msg % (label, expected - nbytes))
    else:
        msg = '%s: %d bytes of records do not fit np=%d and nbody=%d'
        raise SpcFormatError(msg % (label, nbytes, nfreq, nbody))
    records = np.frombuffer(buf, dtype=dtype, count=nstep * nbody,
                            offset=offset).reshape(nstep, nbody)
    ips = records['ip']
    first = nfreq + 1 - nstep
    if not np.all(ips == np.arange(first, nfreq + 1)[:, np.newaxis]):
        msg = '%s: frequency step indices are not in order'
        raise SpcFormatError(msg % label)
    values = records['u'].astype(float)
    if np.any(np.isnan(values)):
        raise ConsistencyError('%s: NaN in spectrum' % label)
    # shape (step, body, channel, order)
    values = values[..., 0::2] + 1j * values[..., 1::2]
    values = values.reshape(nstep, nbody, nstored, norders)
    if spc_type.orders:
        values = _reconstruct(values, spc_type.orders, phi)
    else:
        values = values[..., 0]
    stored = [i for i in range(spc_type.nelement)
              if i not in spc_type.zero_channels]
    spectra = np.zeros((nbody, spc_type.nelement, nfreq + 1), dtype=complex)
    spectra[:, stored, first:] = np.transpose(values, (1, 2, 0))
    bodies = [SpcBody.from_spectra(s) for s in spectra]
    if meta is None:
        meta = AttribDict(receiver_id=None, source_id=None, mode=None)
    log.debug('read %s with %d bodies of type %s', label, nbody,
              spc_type.name)
    return SpcFile(tlen, nfreq, omegai, spc_type, body_r, receiver_position,
                   source_position, bodies=bodies,
                   receiver_id=meta.receiver_id, source_id=meta.source_id,
                   mode=meta.mode, phi=phi, fname=fname)


def write_spc(spc, fname, write_step0=True):
    """
    Write spectral file of a non-catalog type.

    :param spc: `SpcFile`
    :param fname: file name or binary file-like object
    :param write_step0: write records of the frequency step 0
    """
    spc_type = spc.spc_type
    if spc_type.orders or spc_type.zero_channels:
        raise NotImplementedError('writing of catalog files is not supported')
    out = io.BytesIO()
    out.write(struct.pack('>diii', spc.tlen, spc.np, spc.nbody,
                          spc_type.tag))
    out.write(struct.pack('>ddd', spc.omegai, *spc.receiver_position[:2]))
    src = spc.source_position[:spc_type.nsource]
    out.write(struct.pack('>' + 'd' * spc_type.nsource, *src))
    if spc_type.has_radii:
        out.write(struct.pack('>' + 'd' * spc.nbody, *spc.body_r))
    first = 0 if write_step0 else 1
    dtype = np.dtype([('ip', '>i4'), ('u', '>f8', (2 * spc.nelement,))])
    records = np.zeros((spc.np + 1 - first, spc.nbody), dtype=dtype)
    records['ip'] = np.arange(first, spc.np + 1)[:, np.newaxis]
    for ib, body in enumerate(spc.bodies):
        u = body.spectra[:, first:].T
        records['u'][:, ib, 0::2] = u.real
        records['u'][:, ib, 1::2] = u.imag
    out.write(records.tobytes())
    if hasattr(fname, 'write'):
        fname.write(out.getvalue())
    else:
        with open(fname, 'wb') as f:
            f.write(out.getvalue())
