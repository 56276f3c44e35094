# Copyright 2013-2019 Tom Eulenfeld, MIT license
"""
Partial derivatives of waveforms with respect to structure parameters.

The partial derivative (Frechet kernel) for a perturbation point is
calculated by contracting the forward wavefield of the event (FP) with the
backward wavefield (BP) of a unit force at the receiver:

    du_i / dm = W[j, q, r, s] U[j, q] eta[i, r, s]

where ``U[j, q]`` is the strain of the forward wavefield (9 channels, index
``3 * j + q``), ``eta[i, r, s]`` the strain of the backward wavefield due to a
force in direction i (27 channels, index ``9 * i + 3 * r + s``) and ``W`` the
weighting factors of the variable (see `dsmkernel.elastic`).
For density the displacements ``U[j]`` (3 channels) and ``eta[i, j]``
(9 channels, index ``3 * i + j``) are contracted and multiplied with
``omega ** 2``.

Both wavefields are given in coordinate systems aligned with their
respective great circles. The backward tensor is rotated by
``angle_for_tensor`` before the contraction and the resulting radial and
transverse components are rotated by ``angle_for_vector`` onto the great
circle between event and receiver.
"""
import logging
import math

import numpy as np
from obspy import Stream, Trace
from obspy.core.util import AttribDict

from dsmkernel.elastic import load_structure, weighting_factor
from dsmkernel.spcfile import SpcFile, combine, partial_type
from dsmkernel.spectrum import (ConsistencyError, SpcBody, interpolate3,
                                to_time_domain)
from dsmkernel.util import (FullPosition, HorizontalPosition,
                            _add_processing_info, azimuth, find_npts)


log = logging.getLogger(__name__)

COMPONENTS = ('Z', 'R', 'T')


def check_pair(fp, bp, permissive=False):
    """
    Check that forward and backward file can be contracted.

    tlen, np, omegai, radii and the position of the perturbation point have
    to be the same.

    :param permissive: allow up to two radii of the forward file which are
        missing in the backward file
    :return: list of ignored radii
    :raise ConsistencyError: with the name of the differing field
    """
    ident = '%r and %r' % (fp, bp)
    for field in ('tlen', 'np', 'omegai'):
        v1, v2 = getattr(fp, field), getattr(bp, field)
        if v1 != v2:
            msg = '%s differ in %s: %s != %s'
            raise ConsistencyError(msg % (ident, field, v1, v2))
    if tuple(fp.receiver_position) != tuple(bp.receiver_position):
        msg = '%s differ in perturbation point position: %s != %s'
        raise ConsistencyError(msg % (ident, fp.receiver_position,
                                      bp.receiver_position))
    if not permissive:
        if fp.nbody != bp.nbody:
            msg = '%s differ in nbody: %d != %d'
            raise ConsistencyError(msg % (ident, fp.nbody, bp.nbody))
        for i, (r1, r2) in enumerate(zip(fp.body_r, bp.body_r)):
            if r1 != r2:
                msg = '%s differ in radius of body %d: %s != %s'
                raise ConsistencyError(msg % (ident, i, r1, r2))
        return []
    if fp.receiver_id != bp.receiver_id:
        msg = '%s differ in perturbation point: %s != %s'
        raise ConsistencyError(msg % (ident, fp.receiver_id, bp.receiver_id))
    if abs(fp.nbody - bp.nbody) > 2:
        msg = '%s differ in nbody by more than 2: %d != %d'
        raise ConsistencyError(msg % (ident, fp.nbody, bp.nbody))
    ignored = [r for r in fp.body_r if r not in bp.body_r]
    if len(ignored) > 2:
        msg = '%s differ in radii by more than 2 values: %s'
        raise ConsistencyError(msg % (ident, ignored))
    return ignored


def is_good_pair(fp, bp):
    """Return True if `check_pair` succeeds, otherwise log the reason."""
    try:
        check_pair(fp, bp)
    except ConsistencyError as ex:
        log.info('invalid pair: %s', ex)
        return False
    return True


def compute_angles(event, observer, point):
    """
    Return angle_for_tensor and angle_for_vector in radians.

    :param event: position of the event (source of the forward file)
    :param observer: position of the receiver (source of the backward file)
    :param point: position of the perturbation point
    """
    angle_for_tensor = azimuth(point, observer) - azimuth(point, event)
    angle_for_vector = 2 * math.pi - azimuth(observer, event)
    return angle_for_tensor, angle_for_vector


def _rotation_matrix(angle):
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[1, 0, 0], [0, c, s], [0, -s, c]])


def rotate_tensor(eta, angle):
    """
    Rotate spatial indices of the backward wavefield about the vertical axis.

    :param eta: array of shape (3, 3, np + 1) (force, displacement) or
        (3, 3, 3, np + 1) (force, strain indices)
    """
    m = _rotation_matrix(angle)
    if eta.ndim == 3:
        return np.einsum('jk,ikp->ijp', m, eta)
    return np.einsum('rk,sl,iklp->irsp', m, m, eta)


def rotate_vector(v1, v2, angle):
    """
    Rotate horizontal components by angle.

    :return: radial and transverse component
    """
    c, s = math.cos(angle), math.sin(angle)
    return c * v1 + s * v2, -s * v1 + c * v2


def _check_channels(body, nelement, what):
    if body.nelement != nelement:
        msg = '%s body needs %d channels, got %d'
        raise ConsistencyError(msg % (what, nelement, body.nelement))


def _check_result(partial):
    if np.any(np.isnan(partial)):
        raise ConsistencyError('NaN in partial derivative')
    return partial


def tensor_contraction(fp_body, bp_body, weighting, angle):
    """
    Contract strain of forward and backward wavefield.

    :param fp_body: body with 9 channels
    :param bp_body: body with 27 channels
    :param weighting: weighting factors of shape (3, 3, 3, 3)
    :param angle: angle_for_tensor
    :return: complex array of shape (3, np + 1), the partial derivative for
        the three force directions of the backward wavefield
    """
    _check_channels(fp_body, 9, 'forward')
    _check_channels(bp_body, 27, 'backward')
    if fp_body.np != bp_body.np:
        msg = 'different number of frequency steps: %d and %d'
        raise ConsistencyError(msg % (fp_body.np, bp_body.np))
    u = fp_body.spectra.reshape(3, 3, -1)
    eta = rotate_tensor(bp_body.spectra.reshape(3, 3, 3, -1), angle)
    partial = np.einsum('jqrs,jqp,irsp->ip', weighting, u, eta)
    return _check_result(partial)


def density_contraction(fp_body, bp_body, tlen, angle):
    """
    Contract displacement of forward and backward wavefield.

    :param fp_body: body with 3 channels
    :param bp_body: body with 9 channels
    :param tlen: time length, used for omega
    :param angle: angle_for_tensor
    :return: complex array of shape (3, np + 1)
    """
    _check_channels(fp_body, 3, 'forward')
    _check_channels(bp_body, 9, 'backward')
    if fp_body.np != bp_body.np:
        msg = 'different number of frequency steps: %d and %d'
        raise ConsistencyError(msg % (fp_body.np, bp_body.np))
    u = fp_body.spectra
    eta = rotate_tensor(bp_body.spectra.reshape(3, 3, -1), angle)
    omega = 2 * np.pi * np.arange(fp_body.np + 1) / tlen
    partial = np.einsum('jp,ijp->ip', u, eta) * omega ** 2
    return _check_result(partial)


def right_taper(u):
    """Return copy of spectrum with linear taper on the last fifth."""
    u = np.array(u)
    n = len(u) // 5
    if n < 2:
        return u
    u[len(u) - n:] *= 1. - np.arange(n) / (n - 1.)
    return u


def fuji_conversion(u, mu0, qmu, tlen):
    """
    Convert partial derivative for mu to partial derivative for Q.

    The shear modulus of an attenuating medium depends on frequency
    (reference frequency 1 Hz).

    :param u: spectrum of partial derivative for mu, steps 0..np
    :param mu0: shear modulus at the perturbation point
    :param qmu: quality factor at the perturbation point, 0 for no
        attenuation
    """
    q = 1. / qmu if qmu else 0.
    domega = 2 * np.pi / tlen
    omega0 = 2 * np.pi
    # step 0 would give log(0)
    log_ = np.log(np.arange(1, len(u) + 1) * domega / omega0)
    tmp = 1 + q / np.pi * log_ + 0.5j * q
    dmudq = (2 / np.pi * log_ + 1j) * tmp * mu0
    return u * dmudq / tmp ** 2


def fuji_convert(spc, structure=None):
    """
    Convert a synthesized MU1D file to a Q1D file.

    :param structure: `~dsmkernel.elastic.StructureModel`, default PREM
    """
    if spc.spc_type.name != 'MU1D':
        raise ValueError('Q conversion needs a MU1D file, got %s'
                         % spc.spc_type.name)
    if structure is None:
        structure = load_structure()
    bodies = []
    for r, body in zip(spc.body_r, spc.bodies):
        medium = structure.medium_at(r)
        spectra = [fuji_conversion(u, medium.mu, medium.qmu, spc.tlen)
                   for u in body.spectra]
        bodies.append(SpcBody.from_spectra(spectra))
    return SpcFile(spc.tlen, spc.np, spc.omegai, partial_type('Q'),
                   spc.body_r, spc.receiver_position, spc.source_position,
                   bodies=bodies, receiver_id=spc.receiver_id,
                   source_id=spc.source_id, fname=None)


class PartialMaker(object):

    """
    Calculate partial derivatives from a forward and backward file.

    :param fp: forward `~dsmkernel.spcfile.SpcFile` (PF for elastic
        parameters, UF for density)
    :param bp: backward file (PB for elastic parameters, UB for density)
    :param sampling_hz: sampling rate of the time series
    :param bp2,bp3,dh: backward files of the neighbouring catalog positions
        and the differences to the query position, see
        `~dsmkernel.spectrum.interpolate3`
    :param fp2,fp3,dh_fp: same for a forward catalog
    :param stf: `~dsmkernel.stf.SourceTimeFunction` or None
    :param structure: structure model for Q partials, default PREM
    :param taper: taper the end of the spectrum before the transformation
    :param permissive: allow up to two radii of the forward file which are
        missing in the backward file

    The files are not changed.
    """

    def __init__(self, fp, bp, sampling_hz, bp2=None, bp3=None, dh=None,
                 fp2=None, fp3=None, dh_fp=None, stf=None, structure=None,
                 taper=True, permissive=False):
        if (bp2 is None) != (bp3 is None) or (bp2 is not None and
                                              dh is None):
            raise ValueError('backward catalog needs bp2, bp3 and dh')
        if (fp2 is None) != (fp3 is None) or (fp2 is not None and
                                              dh_fp is None):
            raise ValueError('forward catalog needs fp2, fp3 and dh_fp')
        self.ignored_radii = set(check_pair(fp, bp, permissive=permissive))
        fps = (fp, fp2, fp3) if fp2 is not None else (fp,) * 3
        if bp2 is not None:
            for f, b in zip(fps[1:], (bp2, bp3)):
                self.ignored_radii.update(
                    check_pair(f, b, permissive=permissive))
        if self.ignored_radii:
            log.info('ignore radii %s for %r', sorted(self.ignored_radii), fp)
        self.fp, self.fp2, self.fp3, self.dh_fp = fp, fp2, fp3, dh_fp
        self.bp, self.bp2, self.bp3, self.dh = bp, bp2, bp3, dh
        self.sampling_hz = sampling_hz
        self.npts = find_npts(bp.tlen, sampling_hz)
        self.stf = stf
        self.structure = structure
        self.taper = taper
        self.angle_for_tensor, self.angle_for_vector = compute_angles(
            fp.source_position, bp.source_position, bp.receiver_position)

    @classmethod
    def from_psv_sh(cls, fp_psv, fp_sh, bp_psv, bp_sh, sampling_hz,
                    **kwargs):
        """Create maker from PSV and SH parts of forward and backward file."""
        return cls(combine(fp_psv, fp_sh), combine(bp_psv, bp_sh),
                   sampling_hz, **kwargs)

    @property
    def body_r(self):
        """Radii for which partial derivatives can be calculated"""
        return np.array([r for r in self.fp.body_r
                         if r not in self.ignored_radii])

    def _index(self, spc, r):
        indices = np.flatnonzero(spc.body_r == r)
        if len(indices) == 0:
            msg = 'radius %s not in %r' % (r, spc)
            raise ConsistencyError(msg)
        return indices[0]

    def _bodies(self, ibody):
        r = self.fp.body_r[ibody]
        if r in self.ignored_radii:
            msg = 'radius %s of body %d is ignored' % (r, ibody)
            raise ConsistencyError(msg)
        if self.fp2 is None:
            fp_body = self.fp.bodies[ibody]
        else:
            fp_body = interpolate3(
                *[f.bodies[self._index(f, r)]
                  for f in (self.fp, self.fp2, self.fp3)], dh=self.dh_fp)
        if self.bp2 is None:
            bp_body = self.bp.bodies[self._index(self.bp, r)]
        else:
            bp_body = interpolate3(
                *[b.bodies[self._index(b, r)]
                  for b in (self.bp, self.bp2, self.bp3)], dh=self.dh)
        return fp_body, bp_body

    def contract(self, ibody, variable):
        """
        Return spectra of the partial derivative for Z, R and T components.

        :return: complex array of shape (3, np + 1)
        """
        variable = variable.upper()
        fp_body, bp_body = self._bodies(ibody)
        if variable == 'RHO':
            partial = density_contraction(fp_body, bp_body, self.bp.tlen,
                                          self.angle_for_tensor)
        elif variable == 'Q':
            partial = self.contract(ibody, 'MU')
            medium = self._structure().medium_at(self.fp.body_r[ibody])
            return np.array([fuji_conversion(u, medium.mu, medium.qmu,
                                             self.bp.tlen) for u in partial])
        else:
            partial = tensor_contraction(fp_body, bp_body,
                                         weighting_factor(variable),
                                         self.angle_for_tensor)
        r, t = rotate_vector(partial[1], partial[2], self.angle_for_vector)
        return np.array([partial[0], r, t])

    def _structure(self):
        if self.structure is None:
            self.structure = load_structure()
        return self.structure

    def partial_spectrum(self, component, ibody, variable):
        """Spectrum of partial derivative of one component ('Z', 'R', 'T')"""
        return self.contract(ibody, variable)[COMPONENTS.index(component)]

    def _to_time_domain(self, u):
        if self.stf is not None:
            u = self.stf.convolve(u)
        if self.taper:
            u = right_taper(u)
        return to_time_domain(u, self.npts, self.sampling_hz, self.fp.omegai)

    def create_partial(self, component, ibody, variable):
        """
        Return partial derivative of one component as time series.

        :param component: 'Z', 'R' or 'T'
        :param ibody: index of body in the forward file
        :param variable: variable, see `dsmkernel.elastic.VARIABLE_TYPES`
        :return: real array with ``npts`` samples
        """
        u = self.partial_spectrum(component, ibody, variable)
        return self._to_time_domain(u)

    def to_spectrum(self, variable):
        """
        Return partial derivatives of all bodies as synthesized file.

        The bodies of the returned `~dsmkernel.spcfile.SpcFile` have 3
        channels (Z, R, T). The receiver is the source of the backward file.
        """
        variable = variable.upper()
        indices = [i for i, r in enumerate(self.fp.body_r)
                   if r not in self.ignored_radii]
        bodies = [SpcBody.from_spectra(self.contract(i, variable))
                  for i in indices]
        bp = self.bp
        observer = HorizontalPosition(*bp.source_position[:2])
        return SpcFile(bp.tlen, bp.np, bp.omegai, partial_type(variable),
                       self.fp.body_r[indices], observer,
                       self.fp.source_position, bodies=bodies,
                       receiver_id=bp.source_id, source_id=self.fp.source_id)

    @_add_processing_info
    def make_partial_stream(self, variable, components='ZRT', ibodies=None):
        """
        Return partial derivatives as obspy Stream.

        :param variable: variable, see `dsmkernel.elastic.VARIABLE_TYPES`
        :param components: components to calculate
        :param ibodies: indices of bodies, default all not ignored bodies
        """
        if ibodies is None:
            ibodies = [i for i, r in enumerate(self.fp.body_r)
                       if r not in self.ignored_radii]
        variable = variable.upper()
        event = FullPosition(*self.fp.source_position)
        observer = self.bp.source_position
        point = self.bp.receiver_position
        stream = Stream()
        for ibody in ibodies:
            radius = self.fp.body_r[ibody]
            partial = self.contract(ibody, variable)
            for comp in components:
                data = self._to_time_domain(partial[COMPONENTS.index(comp)])
                header = {'station': self.bp.source_id or '',
                          'channel': comp,
                          'sampling_rate': self.sampling_hz}
                tr = Trace(data=data, header=header)
                tr.stats.partial = AttribDict(
                    variable=variable, radius=radius,
                    event_id=self.fp.source_id,
                    point_id=self.fp.receiver_id,
                    point_latitude=point[0], point_longitude=point[1])
                tr.stats.sac = AttribDict(
                    evla=event.latitude, evlo=event.longitude,
                    stla=observer[0], stlo=observer[1],
                    user0=radius, kuser0=variable[:8],
                    kevnm=(self.fp.source_id or '')[:16])
                stream.append(tr)
        return stream
