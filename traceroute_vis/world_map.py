#!/usr/bin/env python3
# Copyright 2025 icecake0141
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# This file was created or modified with the assistance of an AI (Large Language Model).
# Review required for correctness, security, and licensing.

"""
World map canvas for traceroute-vis.

Equirectangular projection of (longitude, latitude) onto a character grid,
with a coarse land mask scaled to any canvas size. These are pure
functions returning lists of strings; writing them to the terminal is
left to ui_render.
"""

from typing import Iterable, List, Optional, Sequence, Tuple

from traceroute_vis.models import GeoRecord

X_BOUNDS = (-180.0, 180.0)
Y_BOUNDS = (-90.0, 90.0)

LAND_CHAR = "."
SEA_CHAR = " "
POINT_CHAR = "x"
POINT_COLOR = "\x1b[33m"  # Yellow
LAND_COLOR = "\x1b[37m"  # White
ANSI_RESET = "\x1b[0m"

# 72 x 36 land mask, one cell per 5 degrees, north at the top.
WORLD_MASK: Tuple[str, ...] = (
    "                                                                        ",
    "                  ##### ########                                        ",
    "            ####################      ###              ##               ",
    "    ####   ##########    #######              ##    ############        ",
    "## ################  ###  #######      #################################",
    "   ##############   ###   ##         ###################################",
    "    #############   ####           # ###############################    ",
    "          ###############         ###############################  #    ",
    "           ##############          ############################ #       ",
    "           ###########            ### ####  ##################  #       ",
    "           ##########             ##  # #################### ###        ",
    "            ########              ##########################  #         ",
    "             ####  #             ############# #############            ",
    "    #          ##  ##            ########## ####  #########             ",
    "               ###   ##          ##############    ##  ##   #           ",
    "                  #  ###         #############     #    ##  #           ",
    "                   ######        #############      #   #  ##           ",
    "                    ######            ######           ## ####          ",
    "                    #######           ######            # # # ####      ",
    "                    #########         ######             ##     ##      ",
    "                     #######           ##### #                ###       ",
    "                      ######          ###### #              #####       ",
    "                      ######           ####  #             #######      ",
    "                      ####             ####                ########     ",
    "                      ####              ##                 ##  ###      ",
    "                     ####                                       ##     #",
    "                     ##                                          #    # ",
    "                     ##                                              #  ",
    "                     #                                                  ",
    "                                                                        ",
    "                       ##                                               ",
    "                     ###                    #########################   ",
    "      ###############           #####################################   ",
    "########################     ###########################################",
    "########################################################################",
    "########################################################################",
)
MASK_WIDTH = len(WORLD_MASK[0])
MASK_HEIGHT = len(WORLD_MASK)


def project(longitude: float, latitude: float, width: int, height: int) -> Optional[Tuple[int, int]]:
    """
    Project a coordinate onto a ``width`` x ``height`` grid.

    Returns:
        (column, row) with row 0 at the top, or None when the coordinate
        falls outside the map bounds or the grid is empty
    """
    if width <= 0 or height <= 0:
        return None
    if not X_BOUNDS[0] <= longitude <= X_BOUNDS[1] or not Y_BOUNDS[0] <= latitude <= Y_BOUNDS[1]:
        return None
    x_span = X_BOUNDS[1] - X_BOUNDS[0]
    y_span = Y_BOUNDS[1] - Y_BOUNDS[0]
    column = int(round((longitude - X_BOUNDS[0]) / x_span * (width - 1)))
    row = int(round((Y_BOUNDS[1] - latitude) / y_span * (height - 1)))
    return column, row


def is_land(column: int, row: int, width: int, height: int) -> bool:
    """Nearest-neighbour sample of the land mask for a grid cell."""
    mask_column = min(MASK_WIDTH - 1, column * MASK_WIDTH // width)
    mask_row = min(MASK_HEIGHT - 1, row * MASK_HEIGHT // height)
    return WORLD_MASK[mask_row][mask_column] != " "


def build_base_grid(width: int, height: int) -> List[List[str]]:
    """Build the land/sea grid without any points."""
    return [[LAND_CHAR if is_land(col, row, width, height) else SEA_CHAR for col in range(width)] for row in range(height)]


def plot_points(grid: List[List[str]], points: Iterable[GeoRecord]) -> int:
    """
    Mark every point on the grid in place.

    Returns:
        Number of points that landed inside the grid
    """
    height = len(grid)
    width = len(grid[0]) if grid else 0
    plotted = 0
    for point in points:
        cell = project(point.longitude, point.latitude, width, height)
        if cell is None:
            continue
        column, row = cell
        grid[row][column] = POINT_CHAR
        plotted += 1
    return plotted


def colorize_row(cells: Sequence[str]) -> str:
    """Join a grid row, wrapping land and point runs in ANSI colours."""
    chunks: List[str] = []
    current_color: Optional[str] = None
    for char in cells:
        if char == POINT_CHAR:
            color: Optional[str] = POINT_COLOR
        elif char == LAND_CHAR:
            color = LAND_COLOR
        else:
            color = None
        if color != current_color:
            chunks.append(color if color else ANSI_RESET)
            current_color = color
        chunks.append(char)
    if current_color is not None:
        chunks.append(ANSI_RESET)
    return "".join(chunks)


def render_map(points: Sequence[GeoRecord], width: int, height: int, use_color: bool = False) -> List[str]:
    """
    Render the full map with every point replotted.

    Args:
        points: Records to plot, in arrival order
        width: Canvas width in characters
        height: Canvas height in lines
        use_color: Wrap land and points in ANSI colours

    Returns:
        ``height`` lines, each ``width`` visible characters wide
    """
    if width <= 0 or height <= 0:
        return []
    grid = build_base_grid(width, height)
    plot_points(grid, points)
    if use_color:
        return [colorize_row(row) for row in grid]
    return ["".join(row) for row in grid]
