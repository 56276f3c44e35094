# Copyright 2013-2016 Tom Eulenfeld, MIT license
"""
Frequency-domain representation of the wavefield at perturbation points.

A `SpcElement` holds the complex spectrum of one channel (a vector or tensor
component) for the frequency steps ``0..np``. A `SpcBody` groups the 3, 9 or
27 elements stored for one perturbation point (radius).
"""
import numpy as np
from scipy.fftpack import ifft


class ConsistencyError(ValueError):
    """Raised for NaN values or mismatching spectra and file pairs."""
    pass


def _check_nan(values, what='spectrum'):
    if np.any(np.isnan(values)):
        raise ConsistencyError('NaN in %s' % what)


def to_time_domain(u_freq, npts, sampling_hz, omegai):
    """
    Convert a one-sided spectrum to a real time series.

    :param u_freq: complex spectrum for frequency steps ``0..np``
    :param npts: number of samples of the time series, at least ``2 * np``
    :param sampling_hz: sampling rate of the time series, the time window
        has the length ``npts / sampling_hz``
    :param omegai: artificial damping used by the solver, it is removed by
        multiplying sample ``k`` with ``exp(omegai * k / sampling_hz)``

    Amplitudes are converted from km to m.
    """
    nfreq = len(u_freq) - 1
    nnp = npts // 2
    if nfreq > nnp:
        msg = 'npts=%d too small for %d frequency steps'
        raise ValueError(msg % (npts, nfreq))
    data = np.zeros(npts, dtype=complex)
    data[:nfreq + 1] = u_freq
    k = np.arange(1, npts - nnp)
    data[npts - k] = np.conj(data[k])
    data = ifft(data)
    t = np.arange(npts) / sampling_hz
    data = data * np.exp(omegai * t) * (1e3 * sampling_hz)
    return np.real(data)


class SpcElement(object):

    """
    Complex spectrum of one channel at one perturbation point.

    :param nfreq: number of frequency steps (np), the spectrum holds
        ``nfreq + 1`` values including the static step 0

    The time series is available as `time_series` after calling
    `convert_to_time_domain`. After that the spectrum can not be changed
    anymore.
    """

    def __init__(self, nfreq):
        self.np = nfreq
        self.u_freq = np.zeros(nfreq + 1, dtype=complex)
        self.time_series = None

    def __repr__(self):
        return 'SpcElement(np=%d)' % self.np

    def _check_mutable(self):
        if self.time_series is not None:
            raise ValueError('spectrum was already converted to time domain')

    def _check_np(self, other):
        if self.np != other.np:
            msg = 'different number of frequency steps: %d and %d'
            raise ConsistencyError(msg % (self.np, other.np))

    def set_value(self, ip, value):
        self._check_mutable()
        _check_nan(value, 'value of frequency step %d' % ip)
        self.u_freq[ip] = value

    def set_values(self, values):
        """Set the whole spectrum (length ``np + 1``)."""
        self._check_mutable()
        values = np.asarray(values, dtype=complex)
        if values.shape != self.u_freq.shape:
            msg = 'expected %d values, got %d'
            raise ConsistencyError(msg % (len(self.u_freq), len(values)))
        _check_nan(values)
        self.u_freq[:] = values

    def copy(self):
        new = SpcElement(self.np)
        new.u_freq = self.u_freq.copy()
        if self.time_series is not None:
            new.time_series = self.time_series.copy()
        return new

    def add(self, other):
        """Add the spectrum of another element in place."""
        self._check_mutable()
        self._check_np(other)
        self.u_freq += other.u_freq
        return self

    def map_multiply(self, factor):
        """Multiply spectrum in place with a scalar or an array."""
        self._check_mutable()
        self.u_freq *= factor
        return self

    def apply_source_time_function(self, stf):
        """Convolve with a `~dsmkernel.stf.SourceTimeFunction`."""
        self._check_mutable()
        if stf is None:
            return self
        self.u_freq = stf.convolve(self.u_freq)
        return self

    def differentiate(self, tlen):
        """
        Differentiate with respect to time.

        Frequency step ``i`` is multiplied with ``-1j * 2 * pi * i / tlen``.
        """
        self._check_mutable()
        omega = 2 * np.pi * np.arange(self.np + 1) / tlen
        self.u_freq *= -1j * omega
        return self

    def convert_to_time_domain(self, npts, sampling_hz, omegai):
        """Compute `time_series`, see `to_time_domain`."""
        self._check_mutable()
        self.time_series = to_time_domain(self.u_freq, npts, sampling_hz,
                                          omegai)
        return self.time_series


class SpcBody(object):

    """
    Spectra of all channels at one perturbation point.

    :param nelement: number of channels (3, 9 or 27)
    :param nfreq: number of frequency steps (np)
    """

    def __init__(self, nelement, nfreq):
        self.np = nfreq
        self.elements = [SpcElement(nfreq) for _ in range(nelement)]

    @property
    def nelement(self):
        return len(self.elements)

    def __repr__(self):
        return 'SpcBody(nelement=%d, np=%d)' % (self.nelement, self.np)

    def __len__(self):
        return len(self.elements)

    def __iter__(self):
        return iter(self.elements)

    def __getitem__(self, i):
        return self.elements[i]

    @classmethod
    def from_spectra(cls, spectra):
        """Create body from a complex array of shape (nelement, np + 1)."""
        spectra = np.asarray(spectra, dtype=complex)
        body = cls(spectra.shape[0], spectra.shape[1] - 1)
        for element, u in zip(body, spectra):
            element.set_values(u)
        return body

    @property
    def spectra(self):
        """Complex array of shape (nelement, np + 1)"""
        return np.array([element.u_freq for element in self.elements])

    def get_spectrum(self, i):
        return self.elements[i].u_freq

    def get_time_series(self, i):
        return self.elements[i].time_series

    def set_values(self, ip, values):
        """Set the values of frequency step ``ip`` for all channels."""
        if len(values) != self.nelement:
            msg = 'expected %d channels, got %d'
            raise ConsistencyError(msg % (self.nelement, len(values)))
        for element, value in zip(self.elements, values):
            element.set_value(ip, value)

    def check_compatible(self, other):
        if self.nelement != other.nelement:
            msg = 'different number of channels: %d and %d'
            raise ConsistencyError(msg % (self.nelement, other.nelement))
        if self.np != other.np:
            msg = 'different number of frequency steps: %d and %d'
            raise ConsistencyError(msg % (self.np, other.np))

    def copy(self):
        new = SpcBody(0, self.np)
        new.elements = [element.copy() for element in self.elements]
        return new

    def add(self, other):
        """Add another body channel by channel in place."""
        self.check_compatible(other)
        for element, other_element in zip(self.elements, other.elements):
            element.add(other_element)
        return self

    def map_multiply(self, factor):
        for element in self.elements:
            element.map_multiply(factor)
        return self

    def apply_source_time_function(self, stf):
        for element in self.elements:
            element.apply_source_time_function(stf)
        return self

    def differentiate(self, tlen):
        for element in self.elements:
            element.differentiate(tlen)
        return self

    def convert_to_time_domain(self, npts, sampling_hz, omegai):
        for element in self.elements:
            element.convert_to_time_domain(npts, sampling_hz, omegai)
        return self

    def interpolate(self, other, unit_distance):
        """
        Linear interpolation between this body and another one.

        :param unit_distance: position between the two bodies in [0, 1],
            0 returns a copy of this body, 1 a copy of the other body
        :return: new body ``(1 - u) * self + u * other``
        """
        if not 0 <= unit_distance <= 1:
            msg = 'unit distance must be between 0 and 1, got %s'
            raise ValueError(msg % unit_distance)
        self.check_compatible(other)
        new = self.copy().map_multiply(1 - unit_distance)
        return new.add(other.copy().map_multiply(unit_distance))


def _superpose(bodies, coeffs):
    for body in bodies[1:]:
        bodies[0].check_compatible(body)
    new = bodies[0].copy().map_multiply(coeffs[0])
    for body, c in zip(bodies[1:], coeffs[1:]):
        new.add(body.copy().map_multiply(c))
    return new


def interpolate3(body1, body2, body3, dh):
    """
    Quadratic Lagrange interpolation of three bodies.

    The bodies are sampled at three equidistant catalog positions
    ``x0 < x1 < x2``. ``dh`` holds the differences ``x - x0, x - x1, x - x2``
    of the query position ``x`` in units of the sample spacing.

    :return: new interpolated body
    """
    c1 = dh[1] * dh[2] / 2
    c2 = -dh[0] * dh[2]
    c3 = dh[0] * dh[1] / 2
    return _superpose([body1, body2, body3], [c1, c2, c3])


def interpolate3_backward(body1, body2, body3, dh):
    """
    Quadratic Lagrange interpolation with the middle sample given first.

    Here ``body1`` is sampled at ``x0``, ``body2`` at ``x0 - 1`` and
    ``body3`` at ``x0 + 1``, ``dh`` holds the corresponding differences to the
    query position.
    """
    c1 = -dh[1] * dh[2]
    c2 = dh[0] * dh[2] / 2
    c3 = dh[0] * dh[1] / 2
    return _superpose([body1, body2, body3], [c1, c2, c3])


def add_body(body1, body2):
    """Return the sum of two bodies as a new body."""
    return body1.copy().add(body2)
