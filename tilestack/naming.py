"""
Tile naming patterns - map a tile address to a storage location
"""

import re

FIELDS = ('level', 'scale', 'x', 'y', 'z', 'tile_width', 'tile_height', 'row', 'col')

DEFAULT_TEMPLATE = '{z}/{row}_{col}_{level}.{format}'

_LEGACY_FIELD = re.compile(r'%(?:(\d+)\$([-#0 +]*\d*(?:\.\d+)?)([dfs])|%)')


def translate_legacy(template):
    """
    Translate a printf-style positional template into a format string.

    '%5$d/%8$d_%9$d_%1$d.jpg' becomes '{4:d}/{7:d}_{8:d}_{0:d}.jpg'.
    """
    def replace(match):
        if match.group(1) is None:
            return '%'
        conversion = match.group(2) + match.group(3)
        if match.group(3) == 's':
            conversion = match.group(2)
        index = int(match.group(1)) - 1
        if not 0 <= index < len(FIELDS):
            raise ValueError(f"Field index {index + 1} out of range in {template!r}")
        return '{%d:%s}' % (index, conversion) if conversion else '{%d}' % index

    escaped = template.replace('{', '{{').replace('}', '}}')
    return _LEGACY_FIELD.sub(replace, escaped)


class TilePattern:
    """
    Storage location template shared by the fetch and write paths.

    Fields are, in this order:
    scale level, scale, x, y, z, tile width, tile height, row and column.
    They can be referenced by position ({4}) or by name ({z}), e.g.

        '{z}/{row}_{col}_{level}.jpg'
        'http://example.org/stack/{level}/{z}/{row}/{col}.jpg'
        '?x={2}&y={3}&width={5}&height={6}&row={7}&col={8}&scale={1:f}&z={4}'
    """

    def __init__(self, template):
        if '$' in template and '%' in template:
            template = translate_legacy(template)
        self.template = template

    @classmethod
    def default(cls, format='jpg', base_url=''):
        return cls(base_url + DEFAULT_TEMPLATE.replace('{format}', format))

    def location(self, level, scale, x, y, z, tile_width, tile_height, row, col):
        values = (int(level), float(scale), int(x), int(y), int(z),
                  int(tile_width), int(tile_height), int(row), int(col))
        return self.template.format(*values, **dict(zip(FIELDS, values)))

    def resolve(self, base_path, *args):
        """Location joined to a base path; blank base paths are ignored."""
        location = self.location(*args)
        if base_path is not None and base_path.strip():
            return base_path.rstrip('/') + '/' + location
        return location

    def __repr__(self):
        return f"TilePattern({self.template!r})"
