# Copyright 2013-2016 Tom Eulenfeld, MIT license
import contextlib
import io
import os
import shutil
import struct
import sys
import tempfile

import numpy as np

from dsmkernel.spcfile import SPC_TYPES, SpcFile
from dsmkernel.spectrum import SpcBody
from dsmkernel.util import EARTH_RADIUS, FullPosition, HorizontalPosition


EVENT = (0., 0., 6271.)
POINT = (10., 20.)
OBSERVER = (30., 40.)


class _Devnull(object):

    def write(self, _):
        pass

    def flush(self):
        pass


@contextlib.contextmanager
def quiet():
    stdout_save = sys.stdout
    sys.stdout = _Devnull()
    try:
        yield
    finally:
        sys.stdout = stdout_save


@contextlib.contextmanager
def tempdir(delete=True, change_dir=True):
    if delete:
        tempdir = tempfile.mkdtemp(prefix='dsmkernel_test')
    else:
        tempdir = os.path.join(tempfile.gettempdir(),
                               'dsmkernel_test_permanent')
        if not os.path.exists(tempdir):
            os.mkdir(tempdir)
    if change_dir:
        cwd = os.getcwd()
        os.chdir(tempdir)
    try:
        yield tempdir
    finally:
        if change_dir:
            os.chdir(cwd)
        if delete and os.path.exists(tempdir):
            shutil.rmtree(tempdir)


def random_values(shape, seed=42):
    rs = np.random.RandomState(seed)
    return rs.normal(size=shape) + 1j * rs.normal(size=shape)


def make_spc(spc_type, nfreq=4, tlen=100., omegai=1e-3, radii=(6000.,),
             receiver=POINT, source=None, seed=0, receiver_id='P001',
             source_id=None):
    """Spectral file with random spectra"""
    spc_type = SPC_TYPES[spc_type]
    if source is None:
        source = EVENT if spc_type.nsource == 3 else OBSERVER
    if spc_type.nsource == 2:
        source = tuple(source[:2]) + (EARTH_RADIUS,)
    if source_id is None:
        source_id = 'EVT1' if spc_type.nsource == 3 else 'STA1'
    values = random_values((len(radii), spc_type.nelement, nfreq + 1), seed)
    bodies = [SpcBody.from_spectra(v) for v in values]
    return SpcFile(tlen, nfreq, omegai, spc_type, radii,
                   HorizontalPosition(*receiver), FullPosition(*source),
                   bodies=bodies, receiver_id=receiver_id,
                   source_id=source_id)


def write_raw_spc(fname, spc_type, values, tlen=100., omegai=1e-3,
                  receiver=POINT, source=EVENT, radii=(6000.,), step0=True,
                  ips=None):
    """
    Write binary spectral file from scratch.

    :param values: complex array of shape (step, body, stored channel) or
        (step, body, stored channel, order) for catalog types
    :param fname: file name or None
    :return: bytes of the file
    """
    if isinstance(spc_type, str):
        spc_type = SPC_TYPES[spc_type]
    values = np.asarray(values, dtype=complex)
    if values.ndim == 3:
        values = values[..., np.newaxis]
    nstep, nbody = values.shape[:2]
    nfreq = nstep - 1 if step0 else nstep
    out = io.BytesIO()
    out.write(struct.pack('>diii', tlen, nfreq, nbody, spc_type.tag))
    out.write(struct.pack('>ddd', omegai, *receiver))
    nsrc = spc_type.nsource
    out.write(struct.pack('>' + 'd' * nsrc, *source[:nsrc]))
    if spc_type.has_radii:
        out.write(struct.pack('>' + 'd' * nbody, *radii))
    if ips is None:
        ips = range(nfreq + 1 - nstep, nfreq + 1)
    for ip, step in zip(ips, values):
        for body in step:
            flat = body.reshape(-1)
            pairs = np.column_stack([flat.real, flat.imag]).reshape(-1)
            out.write(struct.pack('>i', ip))
            out.write(struct.pack('>' + 'd' * len(pairs), *pairs))
    data = out.getvalue()
    if fname is not None:
        with open(fname, 'wb') as f:
            f.write(data)
    return data
