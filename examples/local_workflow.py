#!/usr/bin/env python3
"""
Example: OPTRAM soil moisture and EVI-MAP ET from local Sentinel-2 scenes

This script runs the trapezoid workflow on a directory of pre-processed,
cloud-masked Sentinel-2 L2A scenes (one directory per scene, one GeoTIFF per
band) and reduces the results over polygons from a vector file.

Expected layout:
    /data/s2/S2A_MSIL2A_20220115T142731/S2A_MSIL2A_20220115T142731_B4.tif
    /data/s2/S2A_MSIL2A_20220115T142731/S2A_MSIL2A_20220115T142731_B8.tif
    ...

Usage:
    python local_workflow.py /data/s2 fields.geojson --start 2021-07-01 --end 2024-06-30
"""

import argparse
import logging

import geopandas as gpd
from shapely.ops import unary_union

from optram import (
    LocalFileSource,
    SENSORS,
    TrapezoidConfig,
    regions_from_geodataframe,
    run_evi_map,
    run_trapezoid,
)
from optram.ancillary import get_precipitation_series


def run_optram_example(source, regions, start_date, end_date, workers, scale=None):
    """
    Calibrate OPTRAM on every scene in the date range and print the series.
    """
    print("=" * 60)
    print("Example 1: OPTRAM soil moisture")
    print("=" * 60)

    config = TrapezoidConfig(start_date=start_date, end_date=end_date, max_workers=workers, scale=scale)
    aoi = regions[0].geometry if len(regions) == 1 else None

    print("\nLoading scenes...")
    collection = source.load_collection(aoi, start_date, end_date, band_names=['blue', 'red', 'nir', 'swir2'])
    print(f"Loaded {len(collection)} scenes")

    result = run_trapezoid(
        collection,
        regions=regions,
        family='OPTRAM',
        config=config,
        sensor=source.sensor,
        compute_indices=True,
    )

    corners = result.parameters.corners
    print("\nTrapezoid corners (STR):")
    print(f"  wet vegetation: {corners.wet_veg:.4f}")
    print(f"  dry vegetation: {corners.dry_veg:.4f}")
    print(f"  wet bare soil:  {corners.wet_bare:.4f}")
    print(f"  dry bare soil:  {corners.dry_bare:.4f}")
    print(f"  sd={result.parameters.sd:.4f} sw={result.parameters.sw:.4f}")

    print(f"\nReference map mean: {float(result.reference_map.mean()):.1f} %")

    for name, series in result.timeseries.items():
        print(f"\n{name}: {len(series)} observations")
        for date, value in series.items():
            print(f"  {date.strftime('%Y-%m-%d')}: {value:.1f} %")

    return result


def run_evi_map_example(source, regions, region_frame, start_date, end_date):
    """
    Annual ET from EVI and GridMET precipitation (CONUS only).
    """
    print("\n" + "=" * 60)
    print("Example 2: EVI-MAP annual ET")
    print("=" * 60)

    collection = source.load_collection(None, start_date, end_date, band_names=['blue', 'red', 'nir', 'swir2'])

    # GridMET is in geographic coordinates
    aoi_geographic = unary_union(list(region_frame.to_crs(epsg=4326).geometry))
    print("\nLoading GridMET precipitation...")
    precipitation = get_precipitation_series(aoi_geographic, start_date, end_date)
    print(f"  {len(precipitation)} days, total {precipitation.sum():.0f} mm")

    result = run_evi_map(
        collection,
        precipitation,
        regions=regions,
        config=TrapezoidConfig(start_date=start_date, end_date=end_date),
        sensor=source.sensor,
        compute_indices=True,
    )

    for name, series in result.timeseries.items():
        print(f"\n{name}:")
        for date, value in series.items():
            print(f"  {date.year}: {value:.0f} mm")

    return result


def main():
    parser = argparse.ArgumentParser(description='OPTRAM / EVI-MAP on local scenes')
    parser.add_argument('scenes', help='Directory with one sub-directory per scene')
    parser.add_argument('regions', help='Vector file with region polygons')
    parser.add_argument('--name-column', default='name')
    parser.add_argument('--start', default='2021-07-01')
    parser.add_argument('--end', default='2024-06-30')
    parser.add_argument('--workers', type=int, default=4)
    parser.add_argument('--sensor', choices=sorted(SENSORS), default='SENTINEL2_MSI')
    parser.add_argument('--scale', type=float, default=None, help='Nominal pixel size in metres')
    parser.add_argument('--evi-map', action='store_true', help='Also run EVI-MAP (needs GridMET access)')
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(name)s: %(message)s')

    source = LocalFileSource(args.scenes, sensor=SENSORS[args.sensor])
    region_frame = gpd.read_file(args.regions)
    regions = regions_from_geodataframe(region_frame, name_column=args.name_column)
    print(f"Regions: {[r.name for r in regions]}")

    run_optram_example(source, regions, args.start, args.end, args.workers, scale=args.scale)

    if args.evi_map:
        run_evi_map_example(source, regions, region_frame, args.start, args.end)


if __name__ == '__main__':
    main()
