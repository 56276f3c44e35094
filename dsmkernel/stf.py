# Copyright 2013-2019 Tom Eulenfeld, MIT license
"""
Source time functions in frequency domain.

A source time function is given for the frequency steps ``1..np`` of a
spectral file, the static step 0 is not changed by the convolution.
The handler creates source time functions for events from an explicitly
passed catalog of half durations or of user supplied functions.
"""
from glob import glob
import os.path
from warnings import warn

import numpy as np
from obspy.core.util import AttribDict
from scipy.fftpack import ifft

from dsmkernel.util import find_npts, is_power_of_two


STF_TYPES = ('none', 'boxcar', 'triangle', 'asymmetric_triangle',
             'smoothed_ramp', 'user')


class SourceTimeFunction(object):

    """
    Spectrum of a source time function.

    :param nfreq: number of frequency steps (np)
    :param tlen: time length in s
    :param sampling_hz: sampling rate in Hz of the time domain
    :param spectrum: complex array of length np, index i corresponds to
        the frequency step i + 1
    """

    def __init__(self, nfreq, tlen, sampling_hz, spectrum):
        spectrum = np.asarray(spectrum, dtype=complex)
        if len(spectrum) != nfreq:
            msg = 'source time function needs %d values, got %d'
            raise ValueError(msg % (nfreq, len(spectrum)))
        self.np = nfreq
        self.tlen = tlen
        self.sampling_hz = sampling_hz
        self.spectrum = spectrum

    def __repr__(self):
        return 'SourceTimeFunction(np=%d, tlen=%s, sampling_hz=%s)' % (
            self.np, self.tlen, self.sampling_hz)

    def omega(self):
        """Angular frequencies of the frequency steps 1..np"""
        return 2 * np.pi * np.arange(1, self.np + 1) / self.tlen

    def convolve(self, u_freq):
        """
        Convolve spectrum for the frequency steps 0..np.

        :return: new array
        """
        if len(u_freq) != self.np + 1:
            msg = 'spectrum has %d frequency steps, source time function %d'
            raise ValueError(msg % (len(u_freq) - 1, self.np))
        ret = np.array(u_freq, dtype=complex)
        ret[1:] *= self.spectrum
        return ret

    def time_domain(self, npts=None):
        """
        Return the source time function in time domain.

        :param npts: number of samples, by default the next power of two
            of ``tlen * sampling_hz``
        :return: real array, sample k corresponds to time
            ``k * tlen / npts``
        """
        if npts is None:
            npts = find_npts(self.tlen, self.sampling_hz)
        if npts < 2 * self.np:
            raise ValueError('npts=%d too small' % npts)
        data = np.zeros(npts, dtype=complex)
        data[0] = 1
        data[1:self.np + 1] = self.spectrum
        k = np.arange(1, npts - npts // 2)
        data[npts - k] = np.conj(data[k])
        return np.real(ifft(data)) * npts / self.tlen


def _check_half_duration(*half_durations):
    for hd in half_durations:
        if not hd > 0:
            raise ValueError('half duration has to be positive, got %s' % hd)


def _omega_tau(nfreq, tlen, half_duration):
    _check_half_duration(half_duration)
    return 2 * np.pi * np.arange(1, nfreq + 1) / tlen * half_duration


def boxcar(nfreq, tlen, sampling_hz, half_duration):
    """Boxcar of width ``2 * half_duration`` and unit area"""
    ot = _omega_tau(nfreq, tlen, half_duration)
    return SourceTimeFunction(nfreq, tlen, sampling_hz, np.sin(ot) / ot)


def triangle(nfreq, tlen, sampling_hz, half_duration,
             amplitude_correction=1.):
    """
    Symmetric triangle of width ``2 * half_duration``.

    The area is ``amplitude_correction``.
    """
    ot = _omega_tau(nfreq, tlen, half_duration)
    spec = (2 - 2 * np.cos(ot)) / ot ** 2 * amplitude_correction
    return SourceTimeFunction(nfreq, tlen, sampling_hz, spec)


def asymmetric_triangle(nfreq, tlen, sampling_hz, half_duration1,
                        half_duration2):
    """
    Triangle with rise time ``half_duration1`` and decay time
    ``half_duration2`` and unit area.
    """
    _check_half_duration(half_duration1, half_duration2)
    t1, t2 = half_duration1, half_duration2
    omega = 2 * np.pi * np.arange(1, nfreq + 1) / tlen
    h = 2. / (t1 + t2)
    real = h / omega ** 2 * (1. / t1 + 1. / t2 - np.cos(omega * t1) / t1 -
                             np.cos(omega * t2) / t2)
    imag = -h / omega ** 2 * (np.sin(omega * t1) / t1 -
                              np.sin(omega * t2) / t2)
    return SourceTimeFunction(nfreq, tlen, sampling_hz, real + 1j * imag)


def smoothed_ramp(nfreq, tlen, sampling_hz, half_duration):
    """
    Derivative of a smoothed ramp.

    ``f(t) = (1 - tanh(2t / tau) ** 2) / tau``
    """
    ot = _omega_tau(nfreq, tlen, half_duration) * np.pi / 4
    return SourceTimeFunction(nfreq, tlen, sampling_hz, ot / np.sinh(ot))


def check_values(nfreq, tlen, sampling_hz):
    """Warn for parameters the solver is usually not run with."""
    ok = True
    if sampling_hz != 20:
        warn('sampling rate of %s Hz differs from usual 20 Hz' % sampling_hz)
        ok = False
    if not is_power_of_two(nfreq):
        warn('np=%d is not a power of 2' % nfreq)
        ok = False
    if not is_power_of_two(round(10 * tlen)):
        warn('tlen=%s is not a tenth of a power of 2' % tlen)
        ok = False
    return ok


def read_stf(fname):
    """
    Read source time function from text file.

    Example file::

        #np tlen samplingHz
        4 100.0 20.0
        0.9 -0.1
        0.7 -0.2
        0.4 -0.1
        0.1 0.0
    """
    with open(fname) as f:
        lines = [line for line in f.read().splitlines() if line.strip()]
    nfreq, tlen, sampling_hz = lines[1].split()[:3]
    nfreq = int(nfreq)
    values = np.array([[float(v) for v in line.split()[:2]]
                       for line in lines[2:2 + nfreq]])
    if values.shape != (nfreq, 2):
        raise ValueError('%s: expected %d lines of values' % (fname, nfreq))
    return SourceTimeFunction(nfreq, float(tlen), float(sampling_hz),
                              values[:, 0] + 1j * values[:, 1])


def write_stf(stf, fname):
    """Write source time function to text file, see `read_stf`."""
    with open(fname, 'w') as f:
        f.write('#np tlen samplingHz\n')
        f.write('%d %s %s\n' % (stf.np, float(stf.tlen),
                                float(stf.sampling_hz)))
        for value in stf.spectrum:
            f.write('%s %s\n' % (float(value.real), float(value.imag)))


def read_stf_catalog(fname):
    """
    Read half durations of events from whitespace delimited file.

    The second half duration is only used by asymmetric triangles, the
    amplitude correction only by triangles.

    Example file:
    # event  half_duration1  half_duration2  amplitude_correction
    201104170158A  3.5  4.2  1.0
    """
    ret = AttribDict()
    with open(fname) as f:
        for line in f.readlines():
            vals = line.split()
            if len(vals) < 2 or line.startswith('#'):
                continue
            entry = AttribDict()
            entry.half_duration1 = float(vals[1])
            entry.half_duration2 = (float(vals[2]) if len(vals) > 2 else
                                    entry.half_duration1)
            entry.amplitude_correction = (float(vals[3]) if len(vals) > 3
                                          else 1.)
            ret[vals[0]] = entry
    return ret


def read_user_stfs(path, event_ids=None):
    """
    Read user supplied source time functions ``<path>/<event_id>.stf``.

    :return: dictionary event_id -> `SourceTimeFunction`
    """
    ret = {}
    for fname in sorted(glob(os.path.join(path, '*.stf'))):
        event_id = os.path.basename(fname)[:-4]
        if event_ids is None or event_id in event_ids:
            ret[event_id] = read_stf(fname)
    return ret


class SourceTimeFunctionHandler(object):

    """
    Create source time functions of events.

    :param stf_type: one of 'none', 'boxcar', 'triangle',
        'asymmetric_triangle', 'smoothed_ramp' or 'user'
    :param catalog: dictionary event_id -> entry with half_duration1,
        half_duration2 and amplitude_correction (see `read_stf_catalog`).
        If given, the half durations are taken from the catalog, otherwise
        the half duration passed to `create` is used.
    :param user_functions: dictionary event_id -> `SourceTimeFunction`,
        used for type 'user'
    :param check: warn if np, tlen or sampling rate are unusual

    If no catalog entry or user function is found for an event, a triangle
    with the half duration passed to `create` is used and a warning is
    issued.
    """

    def __init__(self, stf_type='triangle', catalog=None, user_functions=None,
                 check=False):
        stf_type = stf_type.lower()
        if stf_type not in STF_TYPES:
            raise ValueError('Unknown source time function type: %s'
                             % stf_type)
        if stf_type == 'asymmetric_triangle' and catalog is None:
            raise ValueError('asymmetric triangles need a catalog')
        self.stf_type = stf_type
        self.catalog = catalog
        self.user_functions = user_functions or {}
        self.check = check

    def _from_entry(self, nfreq, tlen, sampling_hz, entry):
        hd = entry['half_duration1']
        if self.stf_type == 'boxcar':
            return boxcar(nfreq, tlen, sampling_hz, hd)
        elif self.stf_type == 'triangle':
            amp = entry.get('amplitude_correction', 1.)
            return triangle(nfreq, tlen, sampling_hz, hd, amp)
        elif self.stf_type == 'smoothed_ramp':
            return smoothed_ramp(nfreq, tlen, sampling_hz, hd)
        return asymmetric_triangle(nfreq, tlen, sampling_hz, hd,
                                   entry['half_duration2'])

    def create(self, nfreq, tlen, sampling_hz, event_id=None,
               half_duration=None):
        """
        Return source time function of an event.

        :param event_id: key for catalog and user functions
        :param half_duration: half duration of the event in s
        :return: `SourceTimeFunction` or None for type 'none'
        """
        if self.stf_type == 'none':
            return None
        if self.check:
            check_values(nfreq, tlen, sampling_hz)
        if self.stf_type == 'user':
            stf = self.user_functions.get(event_id)
            if stf is not None:
                if stf.np != nfreq or stf.tlen != tlen:
                    msg = ('source time function of event %s does not fit '
                           'np=%d tlen=%s')
                    raise ValueError(msg % (event_id, nfreq, tlen))
                return stf
        elif self.catalog is None:
            entry = {'half_duration1': half_duration}
            if half_duration is not None:
                return self._from_entry(nfreq, tlen, sampling_hz, entry)
        elif event_id in self.catalog:
            return self._from_entry(nfreq, tlen, sampling_hz,
                                    self.catalog[event_id])
        if half_duration is None:
            msg = 'no source time function and half duration for event %s'
            raise ValueError(msg % event_id)
        warn('No %s source time function for event %s. Use triangle with '
             'half duration %s.' % (self.stf_type, event_id, half_duration))
        return triangle(nfreq, tlen, sampling_hz, half_duration)
