import hashlib
import logging
import os
import re
from io import BytesIO

import requests
from PIL import Image

from wikicopy import config


logger = logging.getLogger(__name__)


UPLOAD_HOST = 'upload.wikimedia.org'
SAFE_PATH = re.compile(r'^[a-zA-Z0-9/_.-]+$')


Image.MAX_IMAGE_PIXELS = 10000000


def is_safe_path(path):
    return bool(SAFE_PATH.match(path)) and '..' not in path and len(path) <= 500


def thumb_path(src):
    """Local ``/thumb/`` path for an upload.wikimedia.org URL, or None."""
    if not src or UPLOAD_HOST not in src:
        return None

    if '/commons/' in src:
        img_path = src.split('/commons/')[-1]
        prefix = ''
    elif '/en/' in src:
        img_path = src.split('/en/')[-1]
        prefix = 'en/'
    else:
        return None

    if not is_safe_path(img_path):
        return None
    return f'{prefix}{img_path}'


def upstream_url(path):
    if path.startswith('en/'):
        return f'https://{UPLOAD_HOST}/wikipedia/{path}'
    return f'https://{UPLOAD_HOST}/wikipedia/commons/{path}'


def fetch_thumbnail(image_url, max_width=config.THUMB_MAX_WIDTH, use_cache=True):
    cache_key = hashlib.md5(image_url.encode()).hexdigest() + '.png'
    cache_path = os.path.join(config.CACHE_DIR, cache_key)

    if use_cache and os.path.exists(cache_path):
        try:
            with open(cache_path, 'rb') as f:
                logger.info(f'Cache hit: {cache_key}')
                return f.read()
        except OSError as e:
            logger.debug(f'Unreadable cache entry {cache_key}: {e}')

    try:
        resp = requests.get(image_url, headers=config.HEADERS, timeout=config.REQUEST_TIMEOUT, stream=True)
        resp.raise_for_status()

        content_length = resp.headers.get('Content-Length')
        if content_length and int(content_length) > config.MAX_THUMB_BYTES:
            return None

        content = resp.content
        if len(content) > config.MAX_THUMB_BYTES:
            return None

        img = Image.open(BytesIO(content))

        if img.mode not in ('RGB', 'RGBA'):
            img = img.convert('RGBA')

        if img.width > max_width:
            ratio = max_width / img.width
            new_height = max(int(img.height * ratio), 1)
            img = img.resize((max_width, new_height), Image.LANCZOS)

        output = BytesIO()
        img.save(output, format='PNG')
        png_data = output.getvalue()

    except (requests.RequestException, OSError, ValueError) as e:
        logger.debug(f'Thumbnail conversion failed for {image_url}: {e}')
        return None

    if use_cache:
        try:
            with open(cache_path, 'wb') as f:
                f.write(png_data)
        except OSError as e:
            logger.debug(f'Failed to cache thumbnail: {e}')

    return png_data
