from minion_mpd.cli import main

main()
