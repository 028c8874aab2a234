"""Device helpers built on the command and callback API."""

from .dht22 import DHT22, DHT22Decoder, DHT22Result
from .dsm501a import DSM501A
from .mh_z14 import MHZ14
from .switch import LED, DigitalOutput, Switch
