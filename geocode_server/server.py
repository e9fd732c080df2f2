import os
import sys

# Ensure the project root is in sys.path for direct execution
if __name__ == '__main__' and __package__ is None:
    PROJECT_ROOT_FOR_SERVER = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
    if PROJECT_ROOT_FOR_SERVER not in sys.path:
        sys.path.insert(0, PROJECT_ROOT_FOR_SERVER)

import math

from absl import app as absl_app
from absl import flags, logging
from flask import Flask, abort, jsonify, request
from werkzeug.exceptions import HTTPException

try:
    from . import geolocator as geolocator_utils
    from . import settings as settings_utils
except ImportError:
    from geocode_server import geolocator as geolocator_utils  # Fallback for direct execution
    from geocode_server import settings as settings_utils


FLAGS = flags.FLAGS

# Define flags if not already defined
try:
    flags.DEFINE_string('settings', None, 'Path to a JSON settings file.')
    flags.DEFINE_string('dataset', None, 'CSV file of places (lat,lon,name,admin1,admin2,admin3).')
    flags.DEFINE_string('host', None, 'Interface for the HTTP server.')
    flags.DEFINE_integer('port', None, 'Port for the HTTP server.')
    flags.DEFINE_float('max_distance', None, 'Discard matches farther than this many degrees. Unset for no cutoff.')
except flags.Error:
    pass  # Flags are already defined

# Coordinates used to log a sample lookup once the index is ready.
SAMPLE_POINT = (44.962786, -93.344722)

app = Flask(__name__)
app.json.sort_keys = False


def get_geolocator():
    """
    Returns the GeoLocator handed to the app at startup.

    Aborts with 503 if the server was started without one.
    """
    geolocator = app.config.get('GEOLOCATOR')
    if geolocator is None:
        logging.error("No GeoLocator configured in Flask app.")
        abort(503, description="Geocoder is not ready.")
    return geolocator


def _float_arg(*names, required=True):
    """
    Reads the first present query parameter among `names` as a finite float.

    Returns:
        The parsed value, or None if the parameter is optional and absent.
    """
    for name in names:
        raw = request.args.get(name)
        if raw is None:
            continue
        try:
            value = float(raw)
        except ValueError:
            abort(400, description=f"Query parameter '{name}' must be a number.")
        if not math.isfinite(value):
            abort(400, description=f"Query parameter '{name}' must be finite.")
        return value
    if required:
        abort(400, description=f"Missing query parameter '{names[0]}'.")
    return None


@app.errorhandler(HTTPException)
def handle_http_error(error):
    """Renders HTTP errors as JSON objects."""
    response = jsonify({"error": error.description})
    response.status_code = error.code
    return response


@app.route('/', methods=['GET'])
@app.route('/reverse', methods=['GET'])
def reverse_geocode():
    """
    Returns the nearest place to the coordinates given as `lat` and `long`.

    `lon` is accepted in place of `long`. An optional `max_distance` overrides
    the configured cutoff for this request.

    Returns:
        A JSON object of the matching record, or a 404 error if there is none.
    """
    latitude = _float_arg('lat')
    longitude = _float_arg('long', 'lon')
    max_distance = _float_arg('max_distance', required=False)
    if max_distance is None:
        max_distance = app.config.get('MAX_DISTANCE')
    elif max_distance < 0:
        abort(400, description="Query parameter 'max_distance' must not be negative.")

    match = get_geolocator().nearest_match(latitude, longitude, max_distance=max_distance)
    if match is None:
        logging.info(f"No match for ({latitude}, {longitude}).")
        abort(404, description="Not found")

    logging.info(f"Served reverse lookup for ({latitude}, {longitude}): {match.record.name}")
    return jsonify(match.record.to_dict())


@app.route('/health', methods=['GET'])
def health():
    """
    Reports whether the index is loaded.

    Returns:
        A JSON object with the record count and tree depth.
    """
    geolocator = get_geolocator()
    return jsonify({"status": "ok", "records": len(geolocator), "depth": geolocator.index.depth})


def configure_app(geolocator, settings):
    """
    Hands the built GeoLocator and the request-level settings to the app.

    Args:
        geolocator: A `geolocator.GeoLocator`.
        settings: A `settings.Settings` object.
    """
    app.config['GEOLOCATOR'] = geolocator
    app.config['MAX_DISTANCE'] = settings.max_distance
    app.json.sort_keys = settings.sort_keys


def load_settings():
    """
    Reads the settings file and applies flags given on the command line.

    Returns:
        A Settings object.
    """
    manager = settings_utils.SettingsManager(FLAGS.settings)
    return manager.apply_overrides(
        dataset_path=FLAGS.dataset,
        host=FLAGS.host,
        port=FLAGS.port,
        max_distance=FLAGS.max_distance,
    )


def run_server(argv):
    """
    Loads the dataset, builds the index and starts the Flask web server.

    Args:
        argv: Command-line arguments passed to the application.
    """
    del argv  # Unused.

    logging.set_verbosity(logging.INFO)

    try:
        settings = load_settings()
    except (OSError, TypeError, ValueError) as e:
        logging.error(f"Invalid settings (file: {FLAGS.settings}): {e}")
        sys.exit(1)

    logging.info(f"Dataset: {settings.dataset_path}")
    try:
        geolocator = geolocator_utils.GeoLocator.from_csv(settings.dataset_path)
    except (OSError, ValueError) as e:  # DataFormatError, EmptyDatasetError
        logging.error(f"Failed to build the geocoder from {settings.dataset_path}: {e}", exc_info=True)
        sys.exit(1)

    sample = geolocator.nearest_city(*SAMPLE_POINT)
    logging.info(f"Sample lookup {SAMPLE_POINT}: {sample}")

    configure_app(geolocator, settings)

    logging.info(f"Starting Flask HTTP server on {settings.host}:{settings.port}...")
    app.run(host=settings.host, port=settings.port, debug=False, use_reloader=False)


def main():
    absl_app.run(run_server)


if __name__ == '__main__':
    main()
