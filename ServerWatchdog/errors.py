"""
Every error the watchdog knows how to handle.

Only `lifecycle.Watchdog` decides if one of these is fatal. Everything
lower down just raises them (or, for probes, catches them and reports "no").
"""


class WatchdogError(Exception):
    """ Base class for every watchdog error """


##################
## Probe Errors ##
##################
# These are all "transient". The polling loops just try again next tick.
class ProbeError(WatchdogError):
    """ A single probe failed (timeout, refused, garbage reply, ...) """

class ProbeUnreachable(ProbeError):
    """ Couldn't connect, or the connection dropped mid-exchange """

class ProbeTimeout(ProbeError):
    """ No reply came back inside the probe's window """

class RconAuthError(ProbeError):
    """ The RCON server refused the password """

class ProbeProtocolError(ProbeError):
    """ Something answered, but not with anything we can parse """


######################
## Lifecycle Errors ##
######################
class DetectionTimeout(WatchdogError):
    """ Neither edition came up before the startup ceiling """

class AddressResolutionError(WatchdogError):
    """ Couldn't work out the task's public IP, even after retrying """

class NotificationError(WatchdogError):
    """ SNS publish failed. Logged by the notifier, never raised past it. """

class ScalerError(WatchdogError):
    """ Couldn't set the service's desired count, even after retrying """
